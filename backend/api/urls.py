from django.urls import path, include
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import (
    TokenObtainPairView,
    TokenRefreshView,
    TokenVerifyView,
)
from . import views

# Create router
router = DefaultRouter()

# Register viewsets
router.register(r'pastures', views.PastureViewSet)
router.register(r'rotations', views.GrazingRotationViewSet)
router.register(r'rest-periods', views.PastureRestPeriodViewSet)
router.register(r'observations', views.PastureObservationViewSet)
router.register(r'gates', views.GateViewSet)

# API URL patterns
urlpatterns = [
    # JWT Authentication
    path('auth/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('auth/token/verify/', TokenVerifyView.as_view(), name='token_verify'),

    # Farm map
    path('property-map/', views.PropertyMapView.as_view(), name='property_map'),
    path('map/layers/', views.MapLayersView.as_view(), name='map_layers'),
    path('map/overlays/', views.MapOverlaysView.as_view(), name='map_overlays'),
    path('map/draw/', views.MapDrawView.as_view(), name='map_draw'),
    path('map/edit/', views.MapEditView.as_view(), name='map_edit'),
    path('map/delete/', views.MapDeleteView.as_view(), name='map_delete'),

    # Include router URLs
    path('', include(router.urls)),
]
