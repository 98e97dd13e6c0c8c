"""Client-side components of the push transport."""

from .stream import ClientState, ReconnectingClient, http_stream_opener

__all__ = ["ClientState", "ReconnectingClient", "http_stream_opener"]
