from django.urls import include, path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from apps.delivery.views import CalculateDistanceView

urlpatterns = [
    path("auth/token/", TokenObtainPairView.as_view(), name="token-obtain-pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token-refresh"),
    path("calculate-distance/", CalculateDistanceView.as_view(), name="calculate-distance"),
    path("delivery/", include("apps.delivery.urls")),
    path("", include("apps.orders.urls")),
    path("", include("apps.payments.urls")),
    path("", include("apps.wallet.urls")),
    path("", include("apps.promotions.urls")),
]
