"""
GCS bucket access for the record store.

Thin JSON-blob helper around google-cloud-storage.  Every call carries a
timeout; generation preconditions are passed through so callers can do
create-only and compare-and-set writes.
"""

import json
import logging
import os

from google.api_core.exceptions import NotFound
from google.cloud import storage

logger = logging.getLogger("radar.infrastructure.gcs")


class GCSBucketManager:
    # HTTP timeout for individual GCS operations (seconds)
    GCS_TIMEOUT = 30

    def __init__(self, bucket_name, project_id=None, service_account_json_path=None, timeout=None):
        """
        Initializes the GCS Client (lazy - only on first use).

        :param bucket_name: The name of the GCS bucket.
        :param project_id: Optional GCP project; defaults to PROJECT_ID env.
        :param service_account_json_path: Path to service account JSON key.
                                          If None, uses GOOGLE_APPLICATION_CREDENTIALS
                                          or default environment auth.
        """
        self.bucket_name = bucket_name
        self.project_id = project_id or os.getenv("PROJECT_ID")
        self.service_account_json_path = service_account_json_path
        self.timeout = timeout or self.GCS_TIMEOUT
        self._client = None
        self._bucket = None

    def _ensure_initialized(self):
        """Lazy initialization of GCS client and bucket"""
        if self._client is None:
            if self.service_account_json_path:
                self._client = storage.Client.from_service_account_json(
                    self.service_account_json_path,
                    project=self.project_id,
                )
            else:
                self._client = storage.Client(project=self.project_id)
            self._bucket = self._client.bucket(self.bucket_name)
            logger.info("Connected to GCS bucket: %s", self.bucket_name)

    @property
    def client(self):
        self._ensure_initialized()
        return self._client

    @property
    def bucket(self):
        self._ensure_initialized()
        return self._bucket

    # READ
    def read_json(self, blob_name):
        """Return (data, generation), or (None, 0) if the blob does not exist."""
        blob = self.bucket.blob(blob_name)
        try:
            content = blob.download_as_text(timeout=self.timeout)
        except NotFound:
            return None, 0
        return json.loads(content), blob.generation or 0

    def list_json(self, prefix):
        """Load every JSON blob under ``prefix``."""
        items = []
        for blob in self.client.list_blobs(self.bucket_name, prefix=prefix, timeout=self.timeout):
            if not blob.name.endswith(".json"):
                continue
            items.append(json.loads(blob.download_as_text(timeout=self.timeout)))
        return items

    # WRITE
    def write_json(self, blob_name, content, if_generation_match=None):
        """
        Upload a JSON string.

        ``if_generation_match=0`` means "only if the blob does not exist";
        any other value requires the live generation to match.
        """
        blob = self.bucket.blob(blob_name)
        kwargs = {"content_type": "application/json", "timeout": self.timeout}
        if if_generation_match is not None:
            kwargs["if_generation_match"] = if_generation_match
        blob.upload_from_string(content, **kwargs)
