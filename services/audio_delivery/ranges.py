"""HTTP ``Range`` header parsing for single byte ranges."""

from pydantic import BaseModel, Field

from shared.errors import ServiceError


class RangeNotSatisfiableError(ServiceError):
    """The requested range lies entirely outside the payload."""

    code = "RANGE_NOT_SATISFIABLE"
    status_code = 416

    def __init__(self, size: int, header: str) -> None:
        super().__init__(f"Range {header!r} not satisfiable for {size} bytes", details={"size": size})
        self.size = size


class ByteRange(BaseModel):
    """Inclusive byte window ``start``..``end`` of a payload of ``size`` bytes."""

    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)
    size: int = Field(..., ge=0)

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.size}"


def parse_range_header(header: str | None, size: int) -> ByteRange | None:
    """
    Parse a ``Range`` header against a payload of ``size`` bytes.

    Supports ``bytes=a-b``, ``bytes=a-`` and the suffix form ``bytes=-n``.
    The end is clamped to the last byte.

    Returns:
        The window to serve, or None when the header is absent or cannot be
        parsed (the caller then serves the full body).

    Raises:
        RangeNotSatisfiableError: The range starts past the end of the payload
    """
    if not header:
        return None
    unit, _, range_spec = header.strip().partition("=")
    if unit.strip().lower() != "bytes" or not range_spec or "," in range_spec:
        return None

    first, sep, last = range_spec.strip().partition("-")
    if not sep:
        return None
    first, last = first.strip(), last.strip()

    try:
        if not first:
            # suffix form: the last n bytes
            suffix = int(last)
            if suffix <= 0 or size == 0:
                raise RangeNotSatisfiableError(size, header)
            return ByteRange(start=max(0, size - suffix), end=size - 1, size=size)

        start = int(first)
        end = int(last) if last else size - 1
    except ValueError:
        return None

    if start < 0 or end < start:
        return None
    if start >= size:
        raise RangeNotSatisfiableError(size, header)
    return ByteRange(start=start, end=min(end, size - 1), size=size)
