from dataclasses import dataclass

from .errors import ConfigurationError


@dataclass(frozen=True)
class Arn:
    """arn:partition:service:region:account-id:resource"""

    partition: str
    service: str
    region: str
    account_id: str
    resource: str

    @property
    def resource_id(self):
        # instance/i-abc, db:mydb, service/cluster/name
        for sep in ("/", ":"):
            if sep in self.resource:
                return self.resource.rsplit(sep, 1)[1]
        return self.resource


def parse_arn(arn):
    text = str(arn or "").strip()
    parts = text.split(":", 5)
    if len(parts) < 5 or parts[0] != "arn":
        raise ConfigurationError(f"Malformed ARN: {arn!r}")

    resource = parts[5] if len(parts) > 5 else ""
    partition, service, region, account_id = parts[1], parts[2], parts[3], parts[4]
    if not account_id or not region:
        raise ConfigurationError(f"ARN has no account or region: {arn!r}")

    return Arn(
        partition=partition,
        service=service,
        region=region,
        account_id=account_id,
        resource=resource,
    )
