"""Error kinds raised by asset operations.

Every operation raises one of these instead of a raw ``OSError`` or Pillow
exception. ``status`` is the HTTP status the server maps the kind to.
"""

from __future__ import annotations


class AssetError(Exception):
    kind = "AssetError"
    status = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.message, "kind": self.kind}


class InvalidPath(AssetError):
    kind = "InvalidPath"
    status = 400


class NotFound(AssetError):
    kind = "NotFound"
    status = 404


class NotAFile(AssetError):
    kind = "NotAFile"
    status = 400


class NotADirectory(AssetError):
    kind = "NotADirectory"
    status = 400


class Conflict(AssetError):
    kind = "Conflict"
    status = 409


class UnsupportedExtension(AssetError):
    kind = "UnsupportedExtension"
    status = 415


class TooLarge(AssetError):
    kind = "TooLarge"
    status = 413


class Empty(AssetError):
    kind = "Empty"
    status = 422


class CodecFailure(AssetError):
    kind = "CodecFailure"
    status = 422


class StorageFailure(AssetError):
    kind = "StorageFailure"
    status = 500
