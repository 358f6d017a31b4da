import threading

import boto3


class ThreadLocalTable:
    """DynamoDB Table that builds its own boto3 session and resource per thread."""

    def __init__(self, table_name, region):
        self.table_name = table_name
        self.region = region
        self._local = threading.local()

    @property
    def table(self):
        table = getattr(self._local, "table", None)
        if table is None:
            session = boto3.session.Session()
            table = session.resource("dynamodb", region_name=self.region).Table(self.table_name)
            self._local.table = table
        return table

    def put_item(self, **kwargs):
        return self.table.put_item(**kwargs)

    def query(self, **kwargs):
        return self.table.query(**kwargs)
