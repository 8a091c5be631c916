from dataclasses import dataclass

import httpx

from services.clients import IdentityLookupClient, ChallengeVerificationClient


@dataclass
class ServiceRegistry:
    http: httpx.AsyncClient
    identity: IdentityLookupClient
    verification: ChallengeVerificationClient

    async def aclose(self):
        await self.http.aclose()
