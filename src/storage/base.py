from abc import ABC, abstractmethod


class BaseStorage(ABC):
    """
    Abstract base class for cover storage.

    Files live under a workspace (prefix) such as "covers/". Implementations
    return the public URL the catalog should reference for a stored file.
    """

    @abstractmethod
    def file_exist(self, workspace: str, filename: str) -> bool:
        """
        Check if a file exists.

        Args:
            workspace (str): The workspace (prefix) path.
            filename (str): The name of the file.

        Returns:
            bool: True if the file exists, False otherwise.
        """

    @abstractmethod
    def save_file(
        self, workspace: str, filename: str, content: bytes, content_type: str = "image/jpeg"
    ) -> str:
        """Saves a file to the specified workspace.

        Args:
            workspace (str): The workspace (prefix) path.
            filename (str): The name of the file to save.
            content (bytes): The raw bytes to store.
            content_type (str): MIME type of the content.

        Returns:
            str: The public URL of the saved file.

        Raises:
            RuntimeError: If file saving fails.
        """

    @abstractmethod
    def _get_absolute_filename(self, workspace: str, filename: str) -> str:
        """Constructs the public URL of a stored file.

        Args:
            workspace (str): The workspace (prefix) path.
            filename (str): The name of the file.

        Returns:
            str: The public URL.
        """

    def public_url(self, workspace: str, filename: str) -> str:
        return self._get_absolute_filename(workspace, filename)
