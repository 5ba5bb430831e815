"""ShopFDS 쿠폰 서비스"""

__version__ = "1.0.0"
