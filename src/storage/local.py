import os

from .base import BaseStorage


class LocalStorage(BaseStorage):
    """Covers stored under the static site's public directory."""

    def __init__(self, root: str = "public"):
        self.root = root

    def file_exist(self, workspace: str, filename: str) -> bool:
        """
        Check if a file exists in local storage

        Args:
            workspace (str): The workspace (prefix) path.
            filename (str): The name of the file.

        Returns:
            bool: True if the file exists, False otherwise.
        """
        if not workspace.endswith("/"):
            workspace += "/"
        return os.path.isfile(os.path.join(self.root, f"{workspace}{filename}"))

    def _get_absolute_filename(self, workspace: str, filename: str) -> str:
        """Site-relative URL of a file under the public directory.

        Args:
            workspace (str): The workspace (prefix) path.
            filename (str): The name of the file.

        Return:
            str: URL path such as "/covers/B00TEST000.jpg".
        """
        if not workspace.endswith("/"):
            workspace += "/"
        return f"/{workspace.lstrip('/')}{filename}"

    def save_file(
        self, workspace: str, filename: str, content: bytes, content_type: str = "image/jpeg"
    ) -> str:
        """Saves a file to the specified workspace in local storage.

        Args:
            workspace (str): The workspace (prefix) path.
            filename (str): The name of the file to save.
            content (bytes): The raw bytes to store.
            content_type (str): Unused locally; the extension carries the type.

        Returns:
            str: The site-relative URL of the saved file.
        """
        if not workspace.endswith("/"):
            workspace += "/"
        directory = os.path.join(self.root, workspace)
        try:
            os.makedirs(directory, exist_ok=True)
            with open(os.path.join(directory, filename), "wb") as file:
                file.write(content)
        except OSError as e:
            raise RuntimeError(f"Error saving file to local storage: {e}")

        return self._get_absolute_filename(workspace, filename)
