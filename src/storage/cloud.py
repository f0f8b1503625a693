import io
import os
from typing import Optional
from dotenv import load_dotenv

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from .base import BaseStorage


class CloudStorage(BaseStorage):
    """A client for S3-compatible object storage (R2, Spaces, S3)."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        key_id: Optional[str] = None,
        access_key: Optional[str] = None,
        bucket_name: Optional[str] = None,
        public_url: Optional[str] = None,
        region: Optional[str] = None,
        client=None,
    ):
        try:
            # Explicit arguments win over environment variables
            load_dotenv()
            endpoint = endpoint or os.getenv("BUCKET_ENDPOINT")
            key_id = key_id or os.getenv("BUCKET_KEY_ID")
            access_key = access_key or os.getenv("BUCKET_ACCESS_KEY")
            bucket_name = bucket_name or os.getenv("BUCKET_NAME")
            public_url = public_url or os.getenv("BUCKET_PUBLIC_URL")

            if client is None and (not endpoint or not key_id or not access_key):
                raise ValueError(
                    "Missing required environment variables for cloud storage client."
                    " Please ensure BUCKET_ENDPOINT, BUCKET_KEY_ID, and BUCKET_ACCESS_KEY are set."
                )
            if not bucket_name:
                raise ValueError("BUCKET_NAME is not set.")

            self.bucket_name = bucket_name
            self.endpoint = endpoint or ""
            self.public_base = (public_url or "").rstrip("/")

            if client is None:
                session = boto3.session.Session()
                client = session.client(
                    "s3",
                    region_name=region or os.getenv("BUCKET_REGION", "auto"),
                    endpoint_url=endpoint,
                    aws_access_key_id=key_id,
                    aws_secret_access_key=access_key,
                )
            self.client = client

        except ValueError as e:
            raise RuntimeError(f"Error loading environment variables: {e}")

    def _get_absolute_filename(self, workspace: str, filename: str) -> str:
        """Public URL of an object.

        Uses BUCKET_PUBLIC_URL when set, else the virtual-host style endpoint URL.

        Args:
            workspace (str): The workspace (prefix) path.
            filename (str): The name of the file.

        Return:
            str: The public URL of the object.
        """
        if not workspace.endswith("/"):
            workspace += "/"
        if self.public_base:
            return f"{self.public_base}/{workspace}{filename}"
        protocol, _, path = self.endpoint.partition("://")
        return f"{protocol}://{self.bucket_name}.{path}/{workspace}{filename}"

    def file_exist(self, workspace: str, filename: str) -> bool:
        """
        Check if a file exists in cloud storage.

        Args:
            workspace (str): The workspace (prefix) path.
            filename (str): The name of the file.

        Returns:
            bool: True if the file exists, False otherwise.
        """
        if not workspace.endswith("/"):
            workspace += "/"
        try:
            self.client.head_object(Bucket=self.bucket_name, Key=f"{workspace}{filename}")
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    def save_file(
        self, workspace: str, filename: str, content: bytes, content_type: str = "image/jpeg"
    ) -> str:
        """Uploads bytes to the specified workspace in cloud storage.

        Args:
            workspace (str): The workspace (prefix) path.
            filename (str): The name of the file to save.
            content (bytes): The raw bytes to upload.
            content_type (str): MIME type stored with the object.

        Returns:
            str: The public URL of the uploaded object.
        """
        if not workspace.endswith("/"):
            workspace += "/"
        try:
            self.client.upload_fileobj(
                io.BytesIO(content),
                self.bucket_name,
                f"{workspace}{filename}",
                ExtraArgs={"ContentType": content_type},
            )
        except (BotoCoreError, ClientError) as e:
            raise RuntimeError(f"Error saving file to cloud storage: {e}")

        return self._get_absolute_filename(workspace, filename)
