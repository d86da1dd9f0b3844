"""AWS client construction.

Clients are built once at service start and handed to the components that use
them; whoever builds a client owns closing it.
"""
import logging
import os
from typing import Any, Dict

import boto3
from botocore.config import Config

from file_gateway.settings import Settings

logger = logging.getLogger(__name__)


def _client_kwargs(settings: Settings) -> Dict[str, Any]:
    client_kwargs: Dict[str, Any] = {
        'region_name': settings.aws_region
    }

    # Add credentials from settings; aws-prod normally relies on the execution role
    if settings.aws_access_key_id:
        client_kwargs['aws_access_key_id'] = settings.aws_access_key_id
    if settings.aws_secret_access_key:
        client_kwargs['aws_secret_access_key'] = settings.aws_secret_access_key

    if settings.aws_endpoint_url:
        client_kwargs['endpoint_url'] = settings.aws_endpoint_url
    return client_kwargs


def _session(settings: Settings) -> boto3.Session:
    # Check for AWS profile in environment (for SSO)
    aws_profile = os.environ.get('AWS_PROFILE')
    if aws_profile and settings.deployment_mode == 'aws-prod':
        logger.debug(f"Using AWS profile: {aws_profile}")
        return boto3.Session(profile_name=aws_profile)
    return boto3.Session()


def build_s3_client(settings: Settings):
    """Create the S3 client used by the remote object backend.

    Timeouts and botocore's own retry budget come from settings and are
    independent of the metadata index timeout.
    """
    config = Config(
        signature_version="s3v4",
        connect_timeout=settings.s3_connect_timeout,
        read_timeout=settings.s3_read_timeout,
        retries={"max_attempts": settings.s3_max_attempts, "mode": "standard"},
    )
    logger.info("Creating S3 client")
    logger.info(f"  Mode: {settings.deployment_mode}")
    logger.info(f"  Region: {settings.aws_region}")
    logger.info(f"  Endpoint: {settings.aws_endpoint_url}")
    try:
        return _session(settings).client('s3', config=config, **_client_kwargs(settings))
    except Exception as e:
        logger.error(f"Error creating s3 client: {str(e)}")
        raise


def build_ses_client(settings: Settings):
    """Create the SES client used by the email notifier."""
    try:
        return _session(settings).client('ses', **_client_kwargs(settings))
    except Exception as e:
        logger.error(f"Error creating ses client: {str(e)}")
        raise
