"""Error taxonomy for the banana CLI."""

from __future__ import annotations

from typing import Sequence


class BananaError(Exception):
    """Base class for every failure surfaced to the command line."""


class UserInputError(BananaError):
    pass


class UnknownModelError(UserInputError):
    def __init__(self, name: str, valid_names: Sequence[str]) -> None:
        self.name = name
        self.valid_names = list(valid_names)
        super().__init__(f"unknown model {name!r} (valid: {', '.join(self.valid_names)})")


class NotFoundError(BananaError):
    pass


class SessionReadError(NotFoundError):
    pass


class FormatError(BananaError):
    pass


class NotPNGError(FormatError):
    pass


class TextChunkNotFoundError(FormatError):
    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"tEXt chunk not found for key: {key}")


class SessionParseError(FormatError):
    pass


class NotASessionError(FormatError):
    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path!r} is not a banana session: {reason}")


class MetadataMissingError(FormatError):
    pass


class MetadataDecodeError(FormatError):
    pass


class CompatibilityError(BananaError):
    pass


class ModelMismatchError(CompatibilityError):
    def __init__(self, declared: str, requested: str) -> None:
        self.declared = declared
        self.requested = requested
        super().__init__(
            f"session was created with {declared!r} but -m is {requested!r}; "
            f"pass -m {declared} to continue this session"
        )


class ExternalServiceError(BananaError):
    pass


class GenerationBlockedError(ExternalServiceError):
    def __init__(self, stage: str, reason: str) -> None:
        self.stage = stage
        self.reason = reason
        super().__init__(f"{stage} blocked (reason: {reason})")


class EmptyResponseError(ExternalServiceError):
    pass


class TransportError(ExternalServiceError):
    pass


class SessionWriteError(BananaError):
    def __init__(self, output_path: str, session_path: str, cause: Exception) -> None:
        self.output_path = output_path
        self.session_path = session_path
        super().__init__(
            f"failed to write session {session_path!r}: {cause} "
            f"(image was saved to {output_path!r})"
        )
