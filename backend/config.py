import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent / ".env")
load_dotenv(Path(__file__).resolve().parent / ".env")

# Collaborator services
LOGIN_API_BASE_URL = os.getenv("LOGIN_API_BASE_URL", "http://localhost:8000")
LOOKUP_BY_NAME_PATH = os.getenv("LOOKUP_BY_NAME_PATH", "/api/login")
LOOKUP_BY_QR_PATH = os.getenv("LOOKUP_BY_QR_PATH", "/api/login_qr")
VERIFY_PATH = os.getenv("VERIFY_PATH", "/api/login_registrer")
# Unset means no timeout; a hung collaborator leaves the flow waiting
_timeout = os.getenv("LOGIN_API_TIMEOUT")
LOGIN_API_TIMEOUT = float(_timeout) if _timeout else None

# Image challenge
SELECTION_SIZE = 3
CHALLENGE_STATUSES = ("next_step", "qr_registrer")
SUCCESS_STATUSES = ("success",)
TRUTHY_VERDICTS = ("true", "1", "yes", "on")

# Mock collaborator data
MOCK_IMAGE_PATH = os.getenv("MOCK_IMAGE_PATH", "/icon.png")
MOCK_IMAGE_LABELS = ["dog", "cat", "rabbit", "bear", "fox", "panda"]
MOCK_QR_USERNAME = os.getenv("MOCK_QR_USERNAME", "guest")

# User-facing messages
MSG_NAME_REQUIRED = "Please enter your name."
MSG_QR_REQUIRED = "The QR code did not contain any data."
MSG_IDENTITY_NOT_FOUND = "No one with that name was found. Please check and try again."
MSG_PICK_IMAGES = f"Please pick {SELECTION_SIZE} pictures."
MSG_WRONG_PASSWORD = "That password is not right."
MSG_SERVICE_ERROR = "Something went wrong. Please try again."
MSG_MALFORMED_CHALLENGE = "The picture password could not be loaded."

# Session hand-off
SESSION_REDIRECT_PATH = os.getenv("SESSION_REDIRECT_PATH", "/main_room")

# Server
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
