"""Configuration management for the clusterward application."""
import os

from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


class Config:
    """Application configuration with sensible defaults."""

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Status API
    API_KEY: str = os.getenv("CLUSTERWARD_API_KEY", "")
    API_HOST: str = os.getenv("CLUSTERWARD_API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("CLUSTERWARD_API_PORT", "8080"))

    # Kubernetes client
    KUBECONFIG: str = os.getenv("KUBECONFIG", "")

    @classmethod
    def validate(cls) -> None:
        """Validate configuration required to serve the status API."""
        required = {
            "CLUSTERWARD_API_KEY": cls.API_KEY,
        }
        missing = [k for k, v in required.items() if not v]
        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")

# Don't validate on import to allow for dynamic configuration
# Call Config.validate() explicitly when needed
