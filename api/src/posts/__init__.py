from .models import POSTS_TABLES_CQL, Post
from .repository import PostNotFoundError, PostRepository


__all__ = ["POSTS_TABLES_CQL", "Post", "PostNotFoundError", "PostRepository"]
