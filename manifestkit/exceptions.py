"""
Exceptions raised by ManifestKit.
"""

from typing import Optional

# Separates an error message from the URI that produced it
URI_DELIMITER = "|"


class ManifestKitError(Exception):
    """Base class for ManifestKit errors."""


class MirrorError(ManifestKitError):
    """
    Error annotated with the URI of the resource that failed.

    The message has the form ``"<original message>|<uri>"``.
    """

    def __init__(self, message: str, uri: Optional[str] = None):
        super().__init__(message)
        self.uri = uri


class KeyFetchError(ManifestKitError):
    """The AES key of a playlist could not be fetched or is malformed."""


class DecryptionError(ManifestKitError):
    """A segment could not be decrypted with its key."""


def is_annotated(err: BaseException) -> bool:
    """Check whether an error message already names its originating URI."""
    return URI_DELIMITER in str(err)


def annotate_error(err: BaseException, uri: str) -> BaseException:
    """
    Attach ``uri`` to an error unless a deeper call already did.

    Returns the original error when it is already annotated, otherwise a new
    ``MirrorError`` that the caller should raise ``from err``.
    """
    if is_annotated(err):
        return err
    return MirrorError(f"{err}{URI_DELIMITER}{uri}", uri=uri)
