from state.session import ChallengeSet


def toggle_index(selected: list[int], index: int, limit: int) -> list[int]:
    """Return the selection after a click on ``index``.

    A picked index is always removed. An unpicked one is appended in click
    order unless the selection is already full, in which case nothing changes.
    """
    if index in selected:
        return [i for i in selected if i != index]
    if len(selected) >= limit:
        return list(selected)
    return [*selected, index]


def payload_labels(challenge: ChallengeSet, selected: list[int]) -> list[str]:
    """Labels for the picked images in ascending index order, never click order."""
    return [challenge.images[i].label for i in sorted(selected)]
