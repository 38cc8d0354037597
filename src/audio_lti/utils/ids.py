"""
ID and file-name generation for submissions and stored recordings.
"""

from uuid import uuid4

# Recordings are always stored as WebM regardless of the declared upload type.
AUDIO_EXTENSION = ".webm"
AUDIO_CONTENT_TYPE = "audio/webm"


def generate_submission_id() -> str:
    """
    Generate a unique submission ID.

    Returns:
        A UUID4 string like "0f8fad5b-d9cb-469f-a165-70867728950e"
    """
    return str(uuid4())


def generate_audio_file_name() -> str:
    """
    Generate a fresh, collision-free file name for local storage.

    Examples:
        >>> name = generate_audio_file_name()
        >>> name.endswith(".webm")
        True
    """
    return f"{uuid4()}{AUDIO_EXTENSION}"


def object_file_name(submission_id: str) -> str:
    """
    File name used for object storage, namespaced by submission ID.

    Examples:
        >>> object_file_name("abc")
        'audio-abc.webm'
    """
    return f"audio-{submission_id}{AUDIO_EXTENSION}"
