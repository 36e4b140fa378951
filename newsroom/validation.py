import logging
from typing import Literal

from fastapi import Request
from pydantic import BaseModel, ValidationError

from newsroom.errors import ApiError, BadRequestError, ValidationFailed, format_validation_errors

logger = logging.getLogger(__name__)

Source = Literal["body", "params", "query"]


async def _raw_input(request: Request, source: Source):
    if source == "query":
        return dict(request.query_params)
    if source == "params":
        return dict(request.path_params)
    body = await request.body()
    if not body:
        return {}
    try:
        return await request.json()
    except ValueError as exc:
        raise BadRequestError("Malformed JSON in request body") from exc


def validate_request(schema: type[BaseModel], source: Source = "body"):
    """
    Build a dependency that parses one part of the request with *schema*.

    The parsed model is returned and also kept on
    ``request.state.validated[source]`` so later dependencies can reuse it.
    A schema violation answers 400 with one ``{field, message}`` entry per
    failed constraint.
    """

    async def dependency(request: Request) -> BaseModel:
        raw = await _raw_input(request, source)
        try:
            parsed = schema.model_validate(raw)
        except ValidationError as exc:
            raise ValidationFailed(details=format_validation_errors(exc.errors())) from exc
        except ApiError:
            raise
        except Exception as exc:
            logger.exception("Validation of %s against %s crashed", source, schema.__name__)
            raise ApiError("An unexpected error occurred during validation", 500) from exc

        validated = getattr(request.state, "validated", None) or {}
        validated[source] = parsed
        request.state.validated = validated
        return parsed

    return dependency
