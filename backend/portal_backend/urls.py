# backend/portal_backend/urls.py

from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include('treatments.urls')),
    path('', include('django_prometheus.urls')),
]
