from typing import BinaryIO, Optional, Union


class StorageProvider:
    """Object storage addressed by slash-separated keys (``bucket/path/name.ext``)."""

    def put(self, key: str, data: Union[bytes, BinaryIO], content_type: Optional[str] = None) -> None:
        raise NotImplementedError

    def public_url(self, key: str) -> str:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


def object_key(bucket: str, *parts: str) -> str:
    return "/".join([bucket.strip("/")] + [p.strip("/") for p in parts if p])
