"""Immutable request objects handed to the dispatcher."""

from abc import abstractmethod
from typing import Any, Callable, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import ArgumentError


class DirectoryRequest(BaseModel):
    """Fields shared by every request. Only the subclasses can be instantiated."""

    model_config = ConfigDict(frozen=True, strict=True)

    operation: ClassVar[str] = "request"
    empty_result: ClassVar[Any] = None

    host: str = Field(..., min_length=1, description="Directory server host")
    port: int = Field(..., ge=1, le=65535, description="Directory server port")
    username: str = Field(..., description="Bind user")
    password: str = Field(..., repr=False, description="Bind password")
    completion: Callable[..., Any] = Field(..., repr=False, description="Called as completion(error, result)")

    @classmethod
    def create(cls, **fields):
        """
        Build a request, reporting invalid input as ArgumentError.
        
        Raises:
            ArgumentError: If a field is missing or has the wrong type
        """
        try:
            return cls(**fields)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in e.errors()
            )
            raise ArgumentError(f"Invalid {cls.operation} arguments: {problems}") from e

    @abstractmethod
    def execute(self, executor):
        """Run the blocking operation on ``executor``; called on a worker thread."""


class AuthenticateRequest(DirectoryRequest):
    operation: ClassVar[str] = "authenticate"
    empty_result: ClassVar[Any] = False

    def execute(self, executor):
        return executor.authenticate(self.host, self.port, self.username, self.password)


class SearchRequest(DirectoryRequest):
    operation: ClassVar[str] = "search"

    search_base: str = Field(..., description="Base DN for the search")
    search_filter: str = Field(..., min_length=1, description="LDAP filter")

    def execute(self, executor):
        return executor.search(
            self.host, self.port, self.username, self.password,
            self.search_base, self.search_filter
        )
