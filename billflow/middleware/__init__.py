from .request_id import REQUEST_ID_HEADER, init_request_id_middleware

__all__ = ["REQUEST_ID_HEADER", "init_request_id_middleware"]
