"""Error taxonomy shared by the ingestion worker, retrieval and chat services.

Classes:
    ServiceError: Base class for every error raised deliberately by the service layer.
    ValidationError: Malformed or missing input; never retried.
    NotFoundError: Referenced form or conversation is absent or not owned by the caller.
    TransientUpstreamError: An embedding, search, queue or completion call failed but may succeed later.
    GenerationError: The embedding or completion provider failed.
    PermanentJobError: A queued job can never succeed and should be dropped.
    PersistenceError: A store write or read failed.
"""

from __future__ import annotations


class ServiceError(Exception):
    status_code = 500


class ValidationError(ServiceError, ValueError):
    status_code = 400


class NotFoundError(ServiceError, LookupError):
    status_code = 404


class TransientUpstreamError(ServiceError):
    status_code = 502


class GenerationError(TransientUpstreamError):
    pass


class PermanentJobError(ServiceError):
    pass


class PersistenceError(ServiceError):
    status_code = 500
