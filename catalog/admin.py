"""Admin registration for catalog models."""

from django.contrib import admin

from .models import Brand, Product, ProductSize


@admin.register(Brand)
class BrandAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "is_active")
    search_fields = ("name", "slug")
    list_filter = ("is_active",)
    prepopulated_fields = {"slug": ("name",)}


class ProductSizeInline(admin.TabularInline):
    model = ProductSize
    extra = 0
    fields = ("size_ml", "sku", "price", "sale_price", "stock_quantity", "reserved_quantity", "is_active")
    readonly_fields = ("stock_quantity", "reserved_quantity")


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "brand", "slug", "is_active")
    search_fields = ("name", "slug", "brand__name")
    list_filter = ("is_active", "brand")
    prepopulated_fields = {"slug": ("name",)}
    inlines = [ProductSizeInline]


@admin.register(ProductSize)
class ProductSizeAdmin(admin.ModelAdmin):
    list_display = ("sku", "product", "size_ml", "price", "sale_price", "stock_quantity", "reserved_quantity", "is_active")
    search_fields = ("sku", "product__name")
    list_filter = ("is_active",)
    readonly_fields = ("stock_quantity", "reserved_quantity")
