from django.urls import include, path
from rest_framework.routers import DefaultRouter

from commission.views import (
    CommissionCalculateAPIView,
    CommissionExportAPIView,
    CommissionGridViewSet,
    CommissionRecordListAPIView,
    CommissionSyncAPIView,
    CommissionTierViewSet,
    GridRateViewSet,
)

router = DefaultRouter()
router.register("grids", CommissionGridViewSet, basename="commission-grids")
router.register("grid-rates", GridRateViewSet, basename="commission-grid-rates")
router.register("tiers", CommissionTierViewSet, basename="commission-tiers")

urlpatterns = [
    path("calculate/", CommissionCalculateAPIView.as_view(), name="commission-calculate"),
    path("sync/", CommissionSyncAPIView.as_view(), name="commission-sync"),
    path("export/", CommissionExportAPIView.as_view(), name="commission-export"),
    path("records/", CommissionRecordListAPIView.as_view(), name="commission-records"),
    path("", include(router.urls)),
]
