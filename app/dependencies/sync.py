from app.db.session import engine
from app.services.relationship_sync import RelationshipSync

_sync = RelationshipSync(engine)


def get_relationship_sync() -> RelationshipSync:
    """Shared sync engine; tests override this to point at their own database."""
    return _sync
