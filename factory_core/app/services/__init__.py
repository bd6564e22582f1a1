"""
Services package initialization.
Business logic layer for block factory operations.
"""

from .errors import (
    FactoryError,
    ValidationError,
    InvalidOperationError,
    TransitionNotImplementedError,
    InsufficientStockError,
    NotFoundError,
    PersistenceFailure,
    PartialFailure,
)
from .unit_of_work import UnitOfWork
from .sequence_service import (
    get_next_sequence,
    next_invoice_number,
    next_batch_number,
)
from .stock_service import (
    adjust_block_stock,
    adjust_material_stock,
    stock_in,
    stock_out,
    purchase_material,
)
from .production_service import (
    start_batch,
    record_production,
    complete_batch,
    pause_batch,
    resume_batch,
    batch_progress,
)
from .sales_service import (
    SaleLine,
    NewCustomer,
    SaleRequest,
    create_sale,
    receive_payment,
)

__all__ = [
    'FactoryError',
    'ValidationError',
    'InvalidOperationError',
    'TransitionNotImplementedError',
    'InsufficientStockError',
    'NotFoundError',
    'PersistenceFailure',
    'PartialFailure',
    'UnitOfWork',
    'get_next_sequence',
    'next_invoice_number',
    'next_batch_number',
    'adjust_block_stock',
    'adjust_material_stock',
    'stock_in',
    'stock_out',
    'purchase_material',
    'start_batch',
    'record_production',
    'complete_batch',
    'pause_batch',
    'resume_batch',
    'batch_progress',
    'SaleLine',
    'NewCustomer',
    'SaleRequest',
    'create_sale',
    'receive_payment',
]
