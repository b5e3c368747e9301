"""
DynamoDB connection (boto3), shared by the API, the webhooks and the import scripts.
"""
from functools import lru_cache
from typing import Any

from app.core.config import get_settings


@lru_cache
def get_dynamodb() -> Any:
    """
    boto3 DynamoDB service resource. Credentials come from settings when set,
    otherwise from the default AWS chain. DYNAMODB_ENDPOINT_URL points at a local instance.
    """
    import boto3

    settings = get_settings()
    kwargs: dict[str, Any] = {"region_name": settings.AWS_REGION}
    if settings.AWS_ACCESS_KEY_ID:
        kwargs["aws_access_key_id"] = settings.AWS_ACCESS_KEY_ID
        kwargs["aws_secret_access_key"] = settings.AWS_SECRET_ACCESS_KEY
    if settings.DYNAMODB_ENDPOINT_URL:
        kwargs["endpoint_url"] = settings.DYNAMODB_ENDPOINT_URL
    return boto3.resource("dynamodb", **kwargs)
