from .analyst import analyst_config
from .engineer import engineer_config
from .scientist import scientist_config


VARIANTS = ("analyst", "engineer", "scientist")


def get_variant_config(variant: str) -> dict:
    """Get configuration for the specified stack variant."""
    configs = {
        "analyst": analyst_config,
        "engineer": engineer_config,
        "scientist": scientist_config,
    }

    if variant not in configs:
        raise ValueError(f"Unknown variant: {variant}")

    return configs[variant]
