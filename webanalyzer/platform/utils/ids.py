from uuid_extension import uuid7


def new_id() -> str:
    """Time-ordered string id, same format as the database primary keys."""
    return str(uuid7())
