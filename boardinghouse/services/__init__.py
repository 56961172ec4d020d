from .notifications import (
    DatabaseNotificationSink,
    NotificationPayload,
    NotificationType,
    PaymentUrgency,
    Recipient,
    build_system_announcement,
    dispatch,
    payment_urgency,
    run_lease_expiry_sweep,
    run_overdue_and_reminder_sweep,
)
from .payments import (
    create_payment,
    create_room_split_payments,
    generate_receipt_number,
    get_overdue_payments,
    get_payment,
    mark_payment_paid,
    payment_stats,
    refresh_status,
    save_payment,
    sweep_overdue,
    tenant_payment_summary,
    tenant_payments,
)
from .deposits import backfill_deposits, has_deposit_paid
from .rent import RentOutcome, generate_rent_for_tenant, run_monthly_rent_generation
from .occupancy import (
    LeaseTerms,
    archive_tenant,
    assign_tenant,
    cleanup_archived_tenants,
    recompute_occupancy,
    remove_archived_tenants,
    remove_tenant,
    unarchive_tenant,
    verify_room_tenant_integrity,
)
from .archival import run_archival_sweep
from .reports import submit_report, update_report_status
from .scheduler import BillingScheduler, CronExpression, get_scheduler
