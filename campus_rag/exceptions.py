"""
Error Taxonomy
==============

Every stage absorbs its own backend failures into a typed fallback. Only an
exception escaping the whole pipeline reaches the user, and then only as a
single generic error event.

    CampusRAGError
    ├── InputError                 missing/invalid message, rejected up front
    │   └── InvalidEmbeddingInput  empty or non-text input to the embedder
    ├── BackendUnavailable         no credential, offline canned responses
    ├── UpstreamCallFailure        timeout / non-2xx from a backend
    ├── MalformedStructuredOutput  planner/verifier JSON unusable
    ├── KnowledgeSourceError       knowledge file missing or unreadable
    └── TransportFailure           unexpected failure escaping the pipeline
"""


class CampusRAGError(Exception):
    """Base class for all errors raised by this package."""


class InputError(CampusRAGError, ValueError):
    """The caller supplied an unusable message."""


class InvalidEmbeddingInput(InputError):
    """Embedding input was empty or not a string."""


class BackendUnavailable(CampusRAGError):
    """No credential is configured for a backend."""


class UpstreamCallFailure(CampusRAGError):
    """A call to the embedding, chat or search backend failed or timed out."""


class MalformedStructuredOutput(CampusRAGError):
    """A model response that was supposed to be JSON could not be used."""


class KnowledgeSourceError(CampusRAGError):
    """The knowledge source could not be read."""


class TransportFailure(CampusRAGError):
    """An unexpected exception escaped the pipeline."""
