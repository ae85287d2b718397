from app.models.tenant import Tenant, Operator, OperatorRole
from app.models.reseller import Reseller, ResellerRole, CommissionType, RateType
from app.models.customer import Customer, CustomerStatus, IspPackage
from app.models.ledger import ResellerTransaction, TransactionType
from app.models.recharge import CustomerRecharge, CustomerPayment, RechargeStatus
from app.models.collection import MultiCollection, MultiCollectionItem, CollectionItemStatus

__all__ = [
    "Tenant",
    "Operator",
    "OperatorRole",
    "Reseller",
    "ResellerRole",
    "CommissionType",
    "RateType",
    "Customer",
    "CustomerStatus",
    "IspPackage",
    "ResellerTransaction",
    "TransactionType",
    "CustomerRecharge",
    "CustomerPayment",
    "RechargeStatus",
    "MultiCollection",
    "MultiCollectionItem",
    "CollectionItemStatus",
]
