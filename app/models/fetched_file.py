"""
Fetched File Model
Produced by the repository fetcher, consumed read-only by the report
synthesizer. Never persisted.
"""
from pydantic import BaseModel


class FetchedFile(BaseModel):
    path: str
    content: str
    truncated: bool = False
