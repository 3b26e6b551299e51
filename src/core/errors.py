"""Error taxonomy shared by the core and adapters.

Item-level errors (conversion, attachment) are handled where they occur and
never abort a batch. Call-level errors (authorization, transport) are raised
to whoever started the fetch.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all tgharvest errors."""


class ConfigError(PipelineError):
    """Invalid wiring, e.g. a duplicate resolver name."""


class ConversionError(PipelineError):
    """A native message could not be converted to a canonical one."""


class NotAuthorized(PipelineError):
    """The platform session is not authorized. Terminal for the fetch call."""


class EmptyResult(PipelineError):
    """The platform returned zero messages for a non-empty request."""


class FetchFailed(PipelineError):
    """Transport-level failure while fetching a page of messages."""


class ResolverError(PipelineError):
    """A resolver stage failed for one batch."""

    def __init__(self, name: str, cause: BaseException) -> None:
        super().__init__(f"Resolver {name!r} failed: {cause}")
        self.name = name
        self.cause = cause


class AttachmentFetchError(PipelineError):
    """A single attachment could not be downloaded."""
