from django.db import models


class StockStatus(models.TextChoices):
    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"


class Product(models.Model):
    """Stock-relevant subset of a catalog product.

    Catalog CRUD is owned by another service; this table carries the
    counter that checkout reserves against.
    """

    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, blank=True, default="")
    price = models.DecimalField(max_digits=12, decimal_places=2)
    stock_quantity = models.IntegerField(default=0)
    manage_stock = models.BooleanField(default=True)
    stock_status = models.CharField(max_length=16, choices=StockStatus.choices, default=StockStatus.IN_STOCK)
    is_active = models.BooleanField(default=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "products"
        constraints = [
            models.CheckConstraint(condition=models.Q(stock_quantity__gte=0), name="product_stock_non_negative"),
        ]

    def __str__(self):
        return f"{self.name} ({self.stock_quantity})"

    @property
    def is_in_stock(self) -> bool:
        return not self.manage_stock or self.stock_quantity > 0
