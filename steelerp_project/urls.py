from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static
from steelerp_project import auth_views

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include('erp_system.urls')),

    # Token authentication (JWT) for API clients
    path('auth/login/', auth_views.login_view, name='login'),
    path('auth/refresh/', auth_views.refresh_view, name='token_refresh'),
    path('auth/logout/', auth_views.logout_view, name='logout'),
    path('auth/me/', auth_views.me_view, name='current_user'),
]

# Serve uploaded media (local invoice PDFs) in development
if settings.DEBUG and not settings.USE_S3:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
