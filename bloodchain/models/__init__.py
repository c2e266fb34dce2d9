# Database models
from .donor import DonorModel, BloodGroup
from .scheduled_donation import ScheduledDonationModel
from .inventory import InventoryRecordModel
from .blood_request import BloodRequestModel, RequestStatus, Urgency
