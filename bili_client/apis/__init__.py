from .user_api import UserApi
from .video_api import VideoApi
from .comment_api import CommentApi
from .favorite_api import FavoriteApi
from .search_api import SearchApi

__all__ = ["UserApi", "VideoApi", "CommentApi", "FavoriteApi", "SearchApi"]
