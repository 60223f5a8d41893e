from dataclasses import dataclass
from typing import Any, ClassVar, Optional, Union
from app.utils.errors import ErrorKind, ScoutBookingsError


@dataclass(frozen=True)
class Success:
    value: Any = None
    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Failure:
    error: ErrorKind
    message: str = ''
    detail: Optional[Any] = None
    ok: ClassVar[bool] = False

    @classmethod
    def from_exception(cls, exc: ScoutBookingsError, detail: Any = None) -> 'Failure':
        return cls(exc.kind or ErrorKind.STORE_ERROR, exc.message, detail)


Result = Union[Success, Failure]
