from medbill.models.medicine import Medicine
from medbill.models.batch import Batch
from medbill.models.customer import Customer
from medbill.models.bill import Bill, BillItem, ScheduledMedicineRecord
from medbill.models.running_bill import RunningBill
from medbill.models.credit import Credit
from medbill.models.bill_sequence import BillSequence
from medbill.models.sales_return import SalesReturn, SalesReturnItem

__all__ = [
    "Medicine", "Batch", "Customer", "Bill", "BillItem", "ScheduledMedicineRecord",
    "RunningBill", "Credit", "BillSequence", "SalesReturn", "SalesReturnItem",
]
