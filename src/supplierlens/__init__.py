"""SupplierLens: duplicate resolution, data quality and priority scoring for discovered businesses."""
