from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator


class TxForgeConfig(BaseModel):
    """Base configuration for txforge components.
    
    This model loads configuration from environment variables and defaults.
    """
    # Network Configuration
    network: Literal["mainnet", "preprod", "preview"] = Field(
        default="preprod",
        description="Cardano network the providers talk to"
    )
    
    # Maestro Provider Configuration
    maestro_api_key: Optional[str] = Field(
        default=None,
        description="API key for the Maestro indexer"
    )
    maestro_turbo_submit: bool = Field(
        default=False,
        description="Submit through Maestro's paid turbo endpoint"
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for a single HTTP request"
    )
    max_pagination_pages: int = Field(
        default=1000,
        description="Maximum number of cursor pages followed in one fetch"
    )
    
    # Confirmation Polling Configuration
    confirmation_poll_interval_seconds: float = Field(
        default=5.0,
        description="Seconds between transaction status polls"
    )
    confirmation_poll_limit: int = Field(
        default=20,
        description="Number of failed polls tolerated before polling stops"
    )
    
    # Coin Selection Configuration
    selection_lovelace_buffer: int = Field(
        default=5000000,
        description="Lovelace selected beyond the requested amount for fees and change"
    )
    collateral_lovelace: int = Field(
        default=5000000,
        description="Minimum lovelace a collateral UTXO must hold"
    )
    
    # Encoder Configuration
    fee_buffer: int = Field(
        default=0,
        description="Lovelace added on top of the estimated transaction fee"
    )
    
    log_level: str = Field(
        default="INFO",
        description="Log level used by the bundled scripts"
    )
    
    @field_validator('request_timeout_seconds', 'confirmation_poll_interval_seconds')
    def validate_positive_seconds(cls, value):
        """Validate durations are positive."""
        if value <= 0:
            raise ValueError("Durations must be greater than 0")
        return value
    
    @field_validator('max_pagination_pages', 'confirmation_poll_limit', 'collateral_lovelace')
    def validate_positive_count(cls, value):
        """Validate counts and amounts are positive."""
        if value <= 0:
            raise ValueError("Value must be greater than 0")
        return value
    
    @field_validator('selection_lovelace_buffer', 'fee_buffer')
    def validate_non_negative(cls, value):
        """Validate buffers are non-negative."""
        if value < 0:
            raise ValueError("Value cannot be negative")
        return value
    
    model_config = {
        "env_prefix": "TXFORGE_",
        "validate_assignment": True,
    }


# Global config instance with default values
config = TxForgeConfig()

def load_config_from_env() -> TxForgeConfig:
    """Load configuration from environment variables.
    
    Returns:
        TxForgeConfig: Configuration instance with values from environment
    """
    import os
    
    # Create a dict of settings from environment variables
    env_settings = {}
    
    # Map environment variables to config fields
    env_mappings = {
        "TXFORGE_NETWORK": "network",
        "TXFORGE_MAESTRO_API_KEY": "maestro_api_key",
        "TXFORGE_MAESTRO_TURBO_SUBMIT": "maestro_turbo_submit",
        "TXFORGE_REQUEST_TIMEOUT_SECONDS": "request_timeout_seconds",
        "TXFORGE_MAX_PAGINATION_PAGES": "max_pagination_pages",
        "TXFORGE_CONFIRMATION_POLL_INTERVAL_SECONDS": "confirmation_poll_interval_seconds",
        "TXFORGE_CONFIRMATION_POLL_LIMIT": "confirmation_poll_limit",
        "TXFORGE_SELECTION_LOVELACE_BUFFER": "selection_lovelace_buffer",
        "TXFORGE_COLLATERAL_LOVELACE": "collateral_lovelace",
        "TXFORGE_FEE_BUFFER": "fee_buffer",
        "TXFORGE_LOG_LEVEL": "log_level",
    }
    
    # Get values from environment
    for env_var, field_name in env_mappings.items():
        if env_var in os.environ:
            value = os.environ[env_var]
            
            # Handle type conversions
            if field_name in ["request_timeout_seconds", "confirmation_poll_interval_seconds"]:
                value = float(value)
            elif field_name in [
                "max_pagination_pages",
                "confirmation_poll_limit",
                "selection_lovelace_buffer",
                "collateral_lovelace",
                "fee_buffer",
            ]:
                value = int(value)
            elif field_name == "maestro_turbo_submit":
                value = value.lower() in ("1", "true", "yes")
                
            env_settings[field_name] = value
    
    # Create config with environment settings
    return TxForgeConfig(**env_settings)
