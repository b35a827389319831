from app.models.user import User, UserRole
from app.models.refresh_token import RefreshToken
from app.models.capability import Capability, RoleCapability, UserCapability, SYSTEM_CAPABILITIES
from app.models.product import Product, ProductType, ProductStatus, StockStatus
from app.models.cart import Cart, CartItem
from app.models.order import Order, OrderItem, OrderStatus, ORDER_STATUS_TRANSITIONS
from app.models.article import Article, ArticleStatus, ArticleVisibility
from app.models.comment import Comment, CommentStatus, ModerationStatus

__all__ = [
    "User",
    "UserRole",
    "RefreshToken",
    "Capability",
    "RoleCapability",
    "UserCapability",
    "SYSTEM_CAPABILITIES",
    "Product",
    "ProductType",
    "ProductStatus",
    "StockStatus",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "ORDER_STATUS_TRANSITIONS",
    "Article",
    "ArticleStatus",
    "ArticleVisibility",
    "Comment",
    "CommentStatus",
    "ModerationStatus",
]
