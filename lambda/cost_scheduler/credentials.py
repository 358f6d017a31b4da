import logging
import threading

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import CredentialError
from .models import Credentials

logger = logging.getLogger(__name__)

SESSION_DURATION_SECONDS = 3600
_MAX_SESSION_NAME = 64


def session_name(account_id, region):
    return f"scheduler-session-{account_id}-{region}"[:_MAX_SESSION_NAME]


class CredentialBroker:
    """Obtains short-lived credentials for one (account, region) pair.

    Nothing is cached: each call performs a fresh AssumeRole so credentials
    never outlive the invocation that requested them.
    """

    def __init__(self, sts_client):
        self._sts = sts_client

    @classmethod
    def from_region(cls, region):
        return cls(boto3.client("sts", region_name=region))

    def assume_role(self, role_arn, account_id, region, external_id=None):
        name = session_name(account_id, region)
        params = {
            "RoleArn": role_arn,
            "RoleSessionName": name,
            "DurationSeconds": SESSION_DURATION_SECONDS,
        }
        if external_id:
            params["ExternalId"] = external_id

        logger.info(
            "assume role account=%s region=%s session=%s external_id=%s",
            account_id,
            region,
            name,
            bool(external_id),
        )
        try:
            resp = self._sts.assume_role(**params)
        except (ClientError, BotoCoreError) as exc:
            raise CredentialError(
                f"Failed to assume role {role_arn}: {exc}",
                account_id=account_id,
                region=region,
            ) from exc

        creds = resp.get("Credentials")
        if not creds:
            raise CredentialError(
                f"No credentials returned for role {role_arn}",
                account_id=account_id,
                region=region,
            )

        return Credentials(
            access_key_id=creds["AccessKeyId"],
            secret_access_key=creds["SecretAccessKey"],
            session_token=creds["SessionToken"],
            region=region,
            expiration=creds.get("Expiration"),
        )


class ProviderContext:
    """Provider API clients for one (account, region) pair."""

    def __init__(self, session, region, account_id=None):
        self.session = session
        self.region = region
        self.account_id = account_id
        self._clients = {}
        self._lock = threading.Lock()

    @classmethod
    def from_credentials(cls, credentials, account_id=None):
        session = boto3.Session(
            aws_access_key_id=credentials.access_key_id,
            aws_secret_access_key=credentials.secret_access_key,
            aws_session_token=credentials.session_token,
            region_name=credentials.region,
        )
        return cls(session, credentials.region, account_id=account_id)

    def client(self, service):
        # boto3 sessions are not thread-safe; clients are
        with self._lock:
            client = self._clients.get(service)
            if client is None:
                client = self.session.client(service, region_name=self.region)
                self._clients[service] = client
            return client
