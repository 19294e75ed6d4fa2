from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from yatrasathi.db import Base

ID_TYPE = BigInteger().with_variant(Integer, "sqlite")
JSON_TYPE = JSON().with_variant(JSONB, "postgresql")
MONEY = Numeric(12, 2)


class AuditMixin:
    """The six audit columns carried by every business table.

    Values are stamped by the session hooks in ``yatrasathi.audit``; handlers
    only set ``closed_by``/``closed_on`` explicitly.
    """

    entered_by: Mapped[int | None] = mapped_column("eby", BigInteger)
    entered_on: Mapped[DateTime | None] = mapped_column("edtm", DateTime(timezone=True))
    modified_by: Mapped[int | None] = mapped_column("mby", BigInteger)
    modified_on: Mapped[DateTime | None] = mapped_column("mdtm", DateTime(timezone=True))
    closed_by: Mapped[int | None] = mapped_column("cby", BigInteger)
    closed_on: Mapped[DateTime | None] = mapped_column("cdtm", DateTime(timezone=True))


class User(AuditMixin, Base):
    __tablename__ = "us_user"

    id: Mapped[int] = mapped_column("us_usid", ID_TYPE, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column("us_email", String(120), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column("us_passwd", Text, nullable=False)
    name: Mapped[str] = mapped_column("us_name", String(100), nullable=False)
    phone: Mapped[str | None] = mapped_column("us_phone", String(20))
    user_type: Mapped[str] = mapped_column("us_usertype", String(20), nullable=False, default="customer")
    role: Mapped[str] = mapped_column("us_role", String(10), nullable=False, default="CUS")
    department: Mapped[str | None] = mapped_column("us_dept", String(50))
    is_active: Mapped[bool] = mapped_column("us_active", Boolean, nullable=False, default=True)
    last_login: Mapped[DateTime | None] = mapped_column("us_lastlogin", DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint(
            "us_usertype IN ('customer', 'employee', 'admin')",
            name="ck_us_user_type",
        ),
    )


class Booking(AuditMixin, Base):
    __tablename__ = "bk_booking"

    id: Mapped[int] = mapped_column("bk_bkid", ID_TYPE, primary_key=True, autoincrement=True)
    booking_no: Mapped[str] = mapped_column("bk_bkno", String(20), nullable=False, unique=True)
    customer_id: Mapped[int] = mapped_column(
        "bk_usid", BigInteger, ForeignKey("us_user.us_usid"), nullable=False
    )
    from_station: Mapped[str] = mapped_column("bk_fromst", String(10), nullable=False)
    to_station: Mapped[str] = mapped_column("bk_tost", String(10), nullable=False)
    travel_date: Mapped[Date] = mapped_column("bk_trvldt", Date, nullable=False)
    travel_class: Mapped[str] = mapped_column("bk_class", String(10), nullable=False)
    quota: Mapped[str] = mapped_column("bk_quota", String(20), nullable=False, default="TATKAL")
    berth_preference: Mapped[str | None] = mapped_column("bk_berthpref", String(20))
    total_passengers: Mapped[int] = mapped_column("bk_totalpass", Integer, nullable=False, default=0)
    request_date: Mapped[DateTime] = mapped_column("bk_reqdt", DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column("bk_status", String(15), nullable=False, default="PENDING")
    agent_id: Mapped[int | None] = mapped_column(
        "bk_agent", BigInteger, ForeignKey("us_user.us_usid")
    )
    priority: Mapped[str] = mapped_column("bk_priority", String(10), nullable=False, default="NORMAL")
    remarks: Mapped[str | None] = mapped_column("bk_remarks", Text)

    __table_args__ = (
        Index("ix_bk_booking_customer", "bk_usid"),
        Index("ix_bk_booking_status", "bk_status"),
    )


class Passenger(AuditMixin, Base):
    __tablename__ = "ps_passenger"

    id: Mapped[int] = mapped_column("ps_psid", ID_TYPE, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(
        "ps_bkid", BigInteger, ForeignKey("bk_booking.bk_bkid"), nullable=False
    )
    first_name: Mapped[str] = mapped_column("ps_fname", String(50), nullable=False)
    last_name: Mapped[str | None] = mapped_column("ps_lname", String(50))
    age: Mapped[int] = mapped_column("ps_age", Integer, nullable=False)
    gender: Mapped[str] = mapped_column("ps_gender", String(1), nullable=False)
    berth_preference: Mapped[str | None] = mapped_column("ps_berthpref", String(20))
    berth_allocated: Mapped[str | None] = mapped_column("ps_berthalloc", String(20))
    seat_no: Mapped[str | None] = mapped_column("ps_seatno", String(10))
    coach: Mapped[str | None] = mapped_column("ps_coach", String(10))
    is_active: Mapped[bool] = mapped_column("ps_active", Boolean, nullable=False, default=True)


class MasterPassenger(AuditMixin, Base):
    """A traveller a customer keeps on file to reuse across bookings."""

    __tablename__ = "cp_master_passenger"

    id: Mapped[int] = mapped_column("cp_cpid", ID_TYPE, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(
        "cp_usid", BigInteger, ForeignKey("us_user.us_usid"), nullable=False
    )
    first_name: Mapped[str] = mapped_column("cp_fname", String(50), nullable=False)
    last_name: Mapped[str | None] = mapped_column("cp_lname", String(50))
    age: Mapped[int] = mapped_column("cp_age", Integer, nullable=False)
    gender: Mapped[str] = mapped_column("cp_gender", String(1), nullable=False)
    berth_preference: Mapped[str | None] = mapped_column("cp_berthpref", String(20))
    id_type: Mapped[str | None] = mapped_column("cp_idtype", String(20))
    id_number: Mapped[str | None] = mapped_column("cp_idnumber", String(30))
    aadhaar: Mapped[str | None] = mapped_column("cp_aadhaar", String(12))
    is_active: Mapped[bool] = mapped_column("cp_active", Boolean, nullable=False, default=True)


class Pnr(AuditMixin, Base):
    __tablename__ = "pn_pnr"

    id: Mapped[int] = mapped_column("pn_pnid", ID_TYPE, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(
        "pn_bkid", BigInteger, ForeignKey("bk_booking.bk_bkid"), nullable=False
    )
    customer_id: Mapped[int] = mapped_column(
        "pn_custid", BigInteger, ForeignKey("us_user.us_usid"), nullable=False
    )
    pnr_number: Mapped[str] = mapped_column("pn_pnr", String(15), nullable=False, unique=True)
    train_no: Mapped[str | None] = mapped_column("pn_trid", String(10))
    travel_date: Mapped[Date] = mapped_column("pn_trvldt", Date, nullable=False)
    travel_class: Mapped[str] = mapped_column("pn_class", String(10), nullable=False)
    quota: Mapped[str | None] = mapped_column("pn_quota", String(20))
    passengers: Mapped[int] = mapped_column("pn_passengers", Integer, nullable=False)
    status: Mapped[str] = mapped_column("pn_status", String(15), nullable=False, default="CNF")
    booking_amount: Mapped[float] = mapped_column("pn_bkgamt", MONEY, nullable=False, default=0)
    service_amount: Mapped[float] = mapped_column("pn_svcamt", MONEY, nullable=False, default=0)
    total_amount: Mapped[float] = mapped_column("pn_totamt", MONEY, nullable=False, default=0)


class Bill(AuditMixin, Base):
    __tablename__ = "bl_bill"

    id: Mapped[int] = mapped_column("bl_blid", ID_TYPE, primary_key=True, autoincrement=True)
    bill_no: Mapped[str] = mapped_column("bl_billno", String(20), nullable=False, unique=True)
    booking_id: Mapped[int] = mapped_column(
        "bl_bkid", BigInteger, ForeignKey("bk_booking.bk_bkid"), nullable=False, unique=True
    )
    customer_id: Mapped[int] = mapped_column(
        "bl_custid", BigInteger, ForeignKey("us_user.us_usid"), nullable=False
    )
    billing_date: Mapped[Date] = mapped_column("bl_billdt", Date, nullable=False)
    journey_date: Mapped[Date | None] = mapped_column("bl_jdate", Date)
    customer_name: Mapped[str | None] = mapped_column("bl_custname", String(100))
    customer_phone: Mapped[str | None] = mapped_column("bl_custphone", String(20))
    station_boy: Mapped[str | None] = mapped_column("bl_stboy", String(100))
    from_station: Mapped[str | None] = mapped_column("bl_fromst", String(10))
    to_station: Mapped[str | None] = mapped_column("bl_tost", String(10))
    train_no: Mapped[str | None] = mapped_column("bl_trainno", String(10))
    travel_class: Mapped[str | None] = mapped_column("bl_class", String(10))
    pnr_number: Mapped[str | None] = mapped_column("bl_pnr", String(15))
    seats_reserved: Mapped[str | None] = mapped_column("bl_seats", String(100))
    railway_fare: Mapped[float] = mapped_column("bl_railfare", MONEY, nullable=False, default=0)
    sb_incentive: Mapped[float] = mapped_column("bl_sbincentive", MONEY, nullable=False, default=0)
    gst: Mapped[float] = mapped_column("bl_gst", MONEY, nullable=False, default=0)
    gst_type: Mapped[str] = mapped_column("bl_gsttype", String(10), nullable=False, default="EXCLUSIVE")
    misc_charges: Mapped[float] = mapped_column("bl_misc", MONEY, nullable=False, default=0)
    platform_fee: Mapped[float] = mapped_column("bl_platformfee", MONEY, nullable=False, default=0)
    service_charge: Mapped[float] = mapped_column("bl_svccharge", MONEY, nullable=False, default=0)
    delivery_charge: Mapped[float] = mapped_column("bl_delcharge", MONEY, nullable=False, default=0)
    cancellation_charge: Mapped[float] = mapped_column("bl_cancharge", MONEY, nullable=False, default=0)
    surcharge: Mapped[float] = mapped_column("bl_surcharge", MONEY, nullable=False, default=0)
    discount: Mapped[float] = mapped_column("bl_discount", MONEY, nullable=False, default=0)
    total_amount: Mapped[float] = mapped_column("bl_totamt", MONEY, nullable=False, default=0)
    status: Mapped[str] = mapped_column("bl_status", String(10), nullable=False, default="DRAFT")
    remarks: Mapped[str | None] = mapped_column("bl_remarks", Text)


class Payment(AuditMixin, Base):
    __tablename__ = "pt_payment"

    id: Mapped[int] = mapped_column("pt_ptid", ID_TYPE, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(
        "pt_custid", BigInteger, ForeignKey("us_user.us_usid"), nullable=False
    )
    booking_id: Mapped[int | None] = mapped_column(
        "pt_bkid", BigInteger, ForeignKey("bk_booking.bk_bkid")
    )
    amount: Mapped[float] = mapped_column("pt_amount", MONEY, nullable=False)
    refunded_amount: Mapped[float] = mapped_column("pt_refunded", MONEY, nullable=False, default=0)
    mode: Mapped[str] = mapped_column("pt_mode", String(10), nullable=False)
    reference_no: Mapped[str | None] = mapped_column("pt_refno", String(50))
    payment_date: Mapped[Date] = mapped_column("pt_paydt", Date, nullable=False)
    status: Mapped[str] = mapped_column("pt_status", String(10), nullable=False, default="RECEIVED")
    verification_status: Mapped[str] = mapped_column(
        "pt_verstatus", String(10), nullable=False, default="PENDING"
    )
    verified_by: Mapped[int | None] = mapped_column("pt_verby", BigInteger)
    verified_on: Mapped[DateTime | None] = mapped_column("pt_verdtm", DateTime(timezone=True))
    financial_year: Mapped[str] = mapped_column("pt_fyear", String(7), nullable=False)
    accounting_period: Mapped[str] = mapped_column("pt_period", String(7), nullable=False)
    remarks: Mapped[str | None] = mapped_column("pt_remarks", Text)

    __table_args__ = (
        CheckConstraint("pt_amount > 0", name="ck_pt_payment_amount"),
        Index("ix_pt_payment_customer", "pt_custid"),
    )


class PaymentAllocation(AuditMixin, Base):
    __tablename__ = "pa_allocation"

    id: Mapped[int] = mapped_column("pa_paid", ID_TYPE, primary_key=True, autoincrement=True)
    payment_id: Mapped[int] = mapped_column(
        "pa_ptid", BigInteger, ForeignKey("pt_payment.pt_ptid"), nullable=False
    )
    pnr_id: Mapped[int] = mapped_column(
        "pa_pnid", BigInteger, ForeignKey("pn_pnr.pn_pnid"), nullable=False
    )
    amount: Mapped[float] = mapped_column("pa_amount", MONEY, nullable=False)
    allocated_on: Mapped[DateTime] = mapped_column("pa_allocdt", DateTime(timezone=True), nullable=False)
    remarks: Mapped[str | None] = mapped_column("pa_remarks", Text)


class CustomerAdvance(AuditMixin, Base):
    __tablename__ = "ca_customer_advance"

    id: Mapped[int] = mapped_column("ca_caid", ID_TYPE, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(
        "ca_custid", BigInteger, ForeignKey("us_user.us_usid"), nullable=False
    )
    financial_year: Mapped[str] = mapped_column("ca_fyear", String(7), nullable=False)
    amount: Mapped[float] = mapped_column("ca_amount", MONEY, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("ca_custid", "ca_fyear", name="uq_ca_customer_year"),
    )


class CustomerLedgerEntry(Base):
    __tablename__ = "lg_customer_ledger"

    id: Mapped[int] = mapped_column("lg_lgid", ID_TYPE, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(
        "lg_custid", BigInteger, ForeignKey("us_user.us_usid"), nullable=False
    )
    entry_type: Mapped[str] = mapped_column("lg_type", String(6), nullable=False)
    amount: Mapped[float] = mapped_column("lg_amount", MONEY, nullable=False)
    opening_balance: Mapped[float] = mapped_column("lg_openbal", MONEY, nullable=False)
    closing_balance: Mapped[float] = mapped_column("lg_closebal", MONEY, nullable=False)
    reference_type: Mapped[str] = mapped_column("lg_reftype", String(10), nullable=False)
    reference_id: Mapped[int | None] = mapped_column("lg_refid", BigInteger)
    narration: Mapped[str | None] = mapped_column("lg_narration", Text)
    financial_year: Mapped[str] = mapped_column("lg_fyear", String(7), nullable=False)
    entered_by: Mapped[int | None] = mapped_column("eby", BigInteger)
    entered_on: Mapped[DateTime] = mapped_column("edtm", DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("lg_type IN ('DEBIT', 'CREDIT')", name="ck_lg_type"),
        Index("ix_lg_customer", "lg_custid"),
    )


class YearEndClosing(AuditMixin, Base):
    __tablename__ = "yc_year_end_closing"

    id: Mapped[int] = mapped_column("yc_ycid", ID_TYPE, primary_key=True, autoincrement=True)
    financial_year: Mapped[str] = mapped_column("yc_fyear", String(7), nullable=False, unique=True)
    total_receivables: Mapped[float] = mapped_column("yc_receivables", MONEY, nullable=False, default=0)
    total_advances: Mapped[float] = mapped_column("yc_advances", MONEY, nullable=False, default=0)
    pnrs_closed: Mapped[int] = mapped_column("yc_pnrs", Integer, nullable=False, default=0)
    vouchers_locked: Mapped[int] = mapped_column("yc_vouchers", Integer, nullable=False, default=0)
    remarks: Mapped[str | None] = mapped_column("yc_remarks", Text)


class LedgerMaster(AuditMixin, Base):
    __tablename__ = "lm_ledger_master"

    id: Mapped[int] = mapped_column("lm_lmid", ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column("lm_name", String(100), nullable=False, unique=True)
    ledger_type: Mapped[str] = mapped_column("lm_type", String(20), nullable=False)
    opening_balance: Mapped[float] = mapped_column("lm_openbal", MONEY, nullable=False, default=0)
    description: Mapped[str | None] = mapped_column("lm_desc", Text)
    is_active: Mapped[bool] = mapped_column("lm_active", Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "lm_type IN ('Cash', 'Bank', 'Expense', 'Income', 'Asset', 'Liability', 'Capital')",
            name="ck_lm_type",
        ),
    )


class Voucher(AuditMixin, Base):
    __tablename__ = "vc_voucher"

    id: Mapped[int] = mapped_column("vc_vcid", ID_TYPE, primary_key=True, autoincrement=True)
    voucher_type: Mapped[str] = mapped_column("vc_type", String(10), nullable=False)
    voucher_no: Mapped[str] = mapped_column("vc_vno", String(30), nullable=False, unique=True)
    entry_date: Mapped[Date] = mapped_column("vc_date", Date, nullable=False)
    financial_year: Mapped[str] = mapped_column("vc_fyear", String(7), nullable=False)
    accounting_period: Mapped[str] = mapped_column("vc_period", String(7), nullable=False)
    account_id: Mapped[int] = mapped_column(
        "vc_account", BigInteger, ForeignKey("lm_ledger_master.lm_lmid"), nullable=False
    )
    counter_account_id: Mapped[int] = mapped_column(
        "vc_counter", BigInteger, ForeignKey("lm_ledger_master.lm_lmid"), nullable=False
    )
    entry_type: Mapped[str] = mapped_column("vc_drcr", String(2), nullable=False, default="Dr")
    amount: Mapped[float] = mapped_column("vc_amount", MONEY, nullable=False)
    mode: Mapped[str | None] = mapped_column("vc_mode", String(10))
    cheque_no: Mapped[str | None] = mapped_column("vc_chequeno", String(20))
    ref_number: Mapped[str | None] = mapped_column("vc_refno", String(50))
    narration: Mapped[str | None] = mapped_column("vc_narration", Text)
    balance_check: Mapped[bool | None] = mapped_column("vc_balchk", Boolean)
    status: Mapped[str] = mapped_column("vc_status", String(10), nullable=False, default="Active")
    locked: Mapped[bool] = mapped_column("vc_locked", Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint("vc_amount > 0", name="ck_vc_amount"),
        CheckConstraint("vc_drcr IN ('Dr', 'Cr')", name="ck_vc_drcr"),
        Index("ix_vc_voucher_type_year", "vc_type", "vc_fyear"),
    )
    __mapper_args__ = {"polymorphic_on": "voucher_type", "polymorphic_identity": "VOUCHER"}


class ContraVoucher(Voucher):
    __mapper_args__ = {"polymorphic_identity": "CONTRA"}


class PaymentVoucher(Voucher):
    __mapper_args__ = {"polymorphic_identity": "PAYMENT"}


class ReceiptVoucher(Voucher):
    __mapper_args__ = {"polymorphic_identity": "RECEIPT"}


class JournalVoucher(Voucher):
    __mapper_args__ = {"polymorphic_identity": "JOURNAL"}


class VoucherLine(Base):
    __tablename__ = "vl_voucher_line"

    id: Mapped[int] = mapped_column("vl_vlid", ID_TYPE, primary_key=True, autoincrement=True)
    voucher_id: Mapped[int] = mapped_column(
        "vl_vcid", BigInteger, ForeignKey("vc_voucher.vc_vcid"), nullable=False
    )
    ledger_name: Mapped[str] = mapped_column("vl_ledger", String(100), nullable=False)
    debit: Mapped[float] = mapped_column("vl_debit", MONEY, nullable=False, default=0)
    credit: Mapped[float] = mapped_column("vl_credit", MONEY, nullable=False, default=0)
    narration: Mapped[str | None] = mapped_column("vl_narration", Text)


class VoucherSequence(Base):
    __tablename__ = "vs_voucher_sequence"

    id: Mapped[int] = mapped_column("vs_vsid", ID_TYPE, primary_key=True, autoincrement=True)
    prefix: Mapped[str] = mapped_column("vs_prefix", String(4), nullable=False)
    financial_year: Mapped[str] = mapped_column("vs_fyear", String(7), nullable=False)
    last_number: Mapped[int] = mapped_column("vs_lastno", Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("vs_prefix", "vs_fyear", name="uq_vs_prefix_year"),
    )


class Station(AuditMixin, Base):
    __tablename__ = "st_station"

    id: Mapped[int] = mapped_column("st_stid", ID_TYPE, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column("st_stcode", String(10), nullable=False, unique=True)
    name: Mapped[str] = mapped_column("st_stname", String(100), nullable=False)
    city: Mapped[str | None] = mapped_column("st_city", String(50))
    state: Mapped[str | None] = mapped_column("st_state", String(50))
    is_active: Mapped[bool] = mapped_column("st_active", Boolean, nullable=False, default=True)


class Train(AuditMixin, Base):
    __tablename__ = "tr_train"

    id: Mapped[int] = mapped_column("tr_trid", ID_TYPE, primary_key=True, autoincrement=True)
    train_no: Mapped[str] = mapped_column("tr_trno", String(10), nullable=False, unique=True)
    name: Mapped[str] = mapped_column("tr_trname", String(100), nullable=False)
    from_station: Mapped[str] = mapped_column(
        "tr_fromst", String(10), ForeignKey("st_station.st_stcode"), nullable=False
    )
    to_station: Mapped[str] = mapped_column(
        "tr_tost", String(10), ForeignKey("st_station.st_stcode"), nullable=False
    )
    # one character per weekday, Monday first: "1" runs, "0" does not
    days: Mapped[str] = mapped_column("tr_days", String(7), nullable=False, default="1111111")
    seats: Mapped[dict | None] = mapped_column("tr_seats", JSON_TYPE)
    fares: Mapped[dict | None] = mapped_column("tr_fares", JSON_TYPE)
    is_active: Mapped[bool] = mapped_column("tr_active", Boolean, nullable=False, default=True)


class TravelPlan(AuditMixin, Base):
    __tablename__ = "tp_travel_plan"

    id: Mapped[int] = mapped_column("tp_tpid", ID_TYPE, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(
        "tp_usid", BigInteger, ForeignKey("us_user.us_usid"), nullable=False
    )
    title: Mapped[str] = mapped_column("tp_title", String(100), nullable=False)
    description: Mapped[str] = mapped_column("tp_description", Text, nullable=False)
    start_date: Mapped[Date] = mapped_column("tp_startdate", Date, nullable=False)
    end_date: Mapped[Date] = mapped_column("tp_enddate", Date, nullable=False)
    destination: Mapped[str] = mapped_column("tp_destination", String(100), nullable=False)
    budget: Mapped[float] = mapped_column("tp_budget", MONEY, nullable=False, default=0)
    activities: Mapped[list | None] = mapped_column("tp_activities", JSON_TYPE)
    is_public: Mapped[bool] = mapped_column("tp_ispublic", Boolean, nullable=False, default=False)
    shared_with: Mapped[list | None] = mapped_column("tp_sharedwith", JSON_TYPE)


class AuditLog(Base):
    __tablename__ = "al_audit_log"

    id: Mapped[int] = mapped_column("al_alid", ID_TYPE, primary_key=True, autoincrement=True)
    entity: Mapped[str] = mapped_column("al_entity", String(30), nullable=False)
    entity_id: Mapped[str] = mapped_column("al_entityid", String(30), nullable=False)
    action: Mapped[str] = mapped_column("al_action", String(10), nullable=False)
    user_id: Mapped[int | None] = mapped_column("al_usid", BigInteger)
    occurred_at: Mapped[DateTime] = mapped_column("al_dtm", DateTime(timezone=True), nullable=False)
    changes: Mapped[dict | None] = mapped_column("al_changes", JSON_TYPE)

    __table_args__ = (
        Index("ix_al_entity", "al_entity", "al_entityid"),
    )
