from .server import create_api_app, outcome_response

__all__ = ["create_api_app", "outcome_response"]
