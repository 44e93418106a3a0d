from django.contrib import admin
from .models import ServiceTemplate, ServiceCatalog, Service


@admin.register(ServiceTemplate)
class ServiceTemplateAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "is_active")
    list_filter = ("category", "is_active")
    search_fields = ("name",)


@admin.register(ServiceCatalog)
class ServiceCatalogAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "base_price", "is_active")
    list_filter = ("category", "is_active")
    search_fields = ("name",)


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ("name", "provider", "template", "category", "price", "is_active")
    list_filter = ("category", "is_active")
    search_fields = ("name", "provider__username")
