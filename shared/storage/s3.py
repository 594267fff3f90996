import io

import urllib3
from minio import Minio
from minio.error import S3Error

# Error codes MinIO/S3 return when the key is already gone
_MISSING_CODES = {"NoSuchKey", "NoSuchObject"}


class Storage:
    """Storage handle bound to a single bucket (one tenant's namespace)."""

    def __init__(self, client: Minio, bucket: str, http_client: urllib3.PoolManager | None = None):
        self.client = client
        self.bucket = bucket
        self._http_client = http_client

    def bucket_exists(self) -> bool:
        return self.client.bucket_exists(self.bucket)

    def ensure_bucket(self):
        found = self.client.bucket_exists(self.bucket)
        if not found:
            self.client.make_bucket(self.bucket)

    def put_object(self, key: str, data: bytes, content_type: str = "application/octet-stream"):
        self.client.put_object(self.bucket, key, io.BytesIO(data), length=len(data), content_type=content_type)

    def delete_object(self, key: str) -> bool:
        """Remove object from bucket.

        Returns False when the object was already absent; other storage errors
        propagate to the caller.
        """
        try:
            self.client.remove_object(self.bucket, key)
        except S3Error as e:
            if e.code in _MISSING_CODES:
                return False
            raise
        return True

    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.clear()
            self._http_client = None


class StorageFactory:
    """Creates per-tenant storage handles against one S3/MinIO endpoint."""

    def __init__(
        self,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        region: str = "us-east-1",
        secure: bool = False,
        timeout: float = 10.0,
    ):
        self.endpoint = endpoint_url.replace("http://", "").replace("https://", "")
        self.access_key = access_key
        self.secret_key = secret_key
        self.region = region
        self.secure = secure
        self.timeout = timeout

    @classmethod
    def from_settings(cls, s) -> "StorageFactory":
        return cls(
            endpoint_url=s.s3_endpoint_url,
            access_key=s.s3_access_key,
            secret_key=s.s3_secret_key,
            region=s.s3_region,
            secure=bool(s.s3_secure),
        )

    def for_tenant(self, tenant) -> Storage:
        # Each handle gets its own connection pool so closing one tenant's
        # handle never affects another tenant's.
        http_client = urllib3.PoolManager(
            timeout=urllib3.Timeout(connect=self.timeout, read=self.timeout),
            retries=urllib3.Retry(total=2, backoff_factor=0.2, status_forcelist=[500, 502, 503, 504]),
        )
        client = Minio(
            self.endpoint,
            access_key=self.access_key,
            secret_key=self.secret_key,
            secure=self.secure,
            region=self.region,
            http_client=http_client,
        )
        return Storage(client, tenant.s3_bucket, http_client=http_client)
