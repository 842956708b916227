"""
Utility functions for ID and name generation
"""
import uuid


def generate_broadcaster_id() -> str:
    """Generate a random broadcaster ID (uuid4)"""
    return str(uuid.uuid4())


def default_broadcaster_name(current_count: int) -> str:
    """Positional placeholder name, from the count before insertion"""
    return "Model " + str(current_count + 1)
