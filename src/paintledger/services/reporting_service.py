from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from paintledger.config import LedgerPolicy
from paintledger.domain import rules
from paintledger.domain.models import Color, PaymentHistory, Return, Sale, SaleItem


@dataclass(frozen=True)
class PeriodSales:
    revenue: Decimal
    transactions: int


@dataclass(frozen=True)
class InventoryStats:
    total_products: int
    total_variants: int
    total_colors: int
    low_stock: int
    total_stock_value: Decimal


@dataclass(frozen=True)
class CustomerTotal:
    customer_name: str
    customer_phone: str
    total_purchases: Decimal
    transaction_count: int


@dataclass(frozen=True)
class DashboardStats:
    today_sales: PeriodSales
    monthly_sales: PeriodSales
    inventory: InventoryStats
    unpaid_count: int
    unpaid_total: Decimal
    recent_sales: tuple[Sale, ...]
    top_customers: tuple[CustomerTotal, ...]


@dataclass(frozen=True)
class AvailableItem:
    sale_id: str
    sale_item_id: str
    color_id: str
    original_quantity: int
    available_quantity: int
    rate: Decimal
    subtotal: Decimal
    sale_date: str


@dataclass(frozen=True)
class PurchaseHistory:
    original_sales: tuple[Sale, ...]
    adjusted_sales: tuple[Sale, ...]
    available_items: tuple[AvailableItem, ...]


@dataclass(frozen=True)
class CustomerStatement:
    customer_phone: str
    sales: tuple[Sale, ...]
    payments: tuple[PaymentHistory, ...]
    returns: tuple[Return, ...]
    total_billed: Decimal
    total_paid: Decimal
    total_refunded: Decimal
    outstanding: Decimal


@dataclass(frozen=True)
class StockOutRow:
    item: SaleItem
    sale: Sale
    color: Color


class ReportingService:
    def __init__(self, repo, policy: LedgerPolicy | None = None, clock: rules.Clock | None = None):
        self.repo = repo
        self.policy = policy or LedgerPolicy()
        self.clock = clock or rules.local_now

    def dashboard_stats(self, recent_limit: int = 10, top_limit: int = 20) -> DashboardStats:
        now = rules.store_now(self.clock, self.policy.timezone)
        today_start = rules.day_start_iso(now.date(), now.tzinfo)
        month_start = rules.day_start_iso(now.date().replace(day=1), now.tzinfo)

        sales = self.repo.list_sales()
        colors = self.repo.list_colors()

        def period(start: str) -> PeriodSales:
            window = [s for s in sales if s.created_at >= start]
            return PeriodSales(
                revenue=sum((s.total_amount for s in window), rules.ZERO),
                transactions=len(window),
            )

        threshold = self.policy.low_stock_threshold
        stock_value = sum(
            (Decimal(c.stock_quantity) * c.variant.rate for c in colors if c.variant is not None),
            rules.ZERO,
        )
        inventory = InventoryStats(
            total_products=len(self.repo.list_products()),
            total_variants=len(self.repo.list_variants()),
            total_colors=len(colors),
            low_stock=sum(1 for c in colors if 0 < c.stock_quantity < threshold),
            total_stock_value=stock_value,
        )

        unpaid = [s for s in sales if s.payment_status != rules.PAID]
        return DashboardStats(
            today_sales=period(today_start),
            monthly_sales=period(month_start),
            inventory=inventory,
            unpaid_count=len(unpaid),
            unpaid_total=sum((s.outstanding for s in unpaid), rules.ZERO),
            recent_sales=tuple(sales[:recent_limit]),
            top_customers=tuple(self._top_customers(sales, top_limit)),
        )

    def _top_customers(self, sales: list[Sale], limit: int) -> list[CustomerTotal]:
        grouped: dict[tuple[str, str], list[Sale]] = {}
        for s in sales:
            if not s.customer_phone:
                continue
            grouped.setdefault((s.customer_phone, s.customer_name), []).append(s)
        totals = [
            CustomerTotal(
                customer_name=name,
                customer_phone=phone,
                total_purchases=sum((s.total_amount for s in rows), rules.ZERO),
                transaction_count=len(rows),
            )
            for (phone, name), rows in grouped.items()
        ]
        totals.sort(key=lambda t: t.total_purchases, reverse=True)
        return totals[:limit]

    def customer_purchase_history(self, customer_phone: str) -> PurchaseHistory:
        """Sales for a customer with returned quantities taken off each line.

        Lines fully returned are dropped, and so are sales left with no lines.
        """
        sales = self.repo.list_sales_by_phone(customer_phone)
        returned: dict[str, int] = {}
        for ret in self.repo.list_returns_by_phone(customer_phone):
            for ri in ret.items:
                if ri.sale_item_id:
                    returned[ri.sale_item_id] = returned.get(ri.sale_item_id, 0) + ri.quantity

        adjusted: list[Sale] = []
        available: list[AvailableItem] = []
        for sale in sales:
            lines: list[SaleItem] = []
            for item in sale.items:
                qty = max(0, item.quantity - returned.get(item.id, 0))
                if qty <= 0:
                    continue
                sub = rules.subtotal(qty, item.rate)
                lines.append(
                    SaleItem(
                        id=item.id,
                        sale_id=item.sale_id,
                        color_id=item.color_id,
                        quantity=qty,
                        rate=item.rate,
                        subtotal=sub,
                    )
                )
                available.append(
                    AvailableItem(
                        sale_id=sale.id,
                        sale_item_id=item.id,
                        color_id=item.color_id,
                        original_quantity=item.quantity,
                        available_quantity=qty,
                        rate=item.rate,
                        subtotal=sub,
                        sale_date=sale.created_at,
                    )
                )
            if lines:
                adjusted.append(
                    Sale(
                        id=sale.id,
                        customer_name=sale.customer_name,
                        customer_phone=sale.customer_phone,
                        total_amount=sum((i.subtotal for i in lines), rules.ZERO),
                        amount_paid=sale.amount_paid,
                        payment_status=sale.payment_status,
                        due_date=sale.due_date,
                        is_manual_balance=sale.is_manual_balance,
                        notes=sale.notes,
                        created_at=sale.created_at,
                        items=tuple(lines),
                    )
                )

        return PurchaseHistory(
            original_sales=tuple(sales),
            adjusted_sales=tuple(adjusted),
            available_items=tuple(available),
        )

    def customer_statement(self, customer_phone: str) -> CustomerStatement:
        sales = self.repo.list_sales_by_phone(customer_phone)
        payments = self.repo.list_payments_for_customer(customer_phone)
        returns = self.repo.list_returns_by_phone(customer_phone)
        billed = sum((s.total_amount for s in sales), rules.ZERO)
        paid = sum((s.amount_paid for s in sales), rules.ZERO)
        return CustomerStatement(
            customer_phone=customer_phone,
            sales=tuple(sales),
            payments=tuple(payments),
            returns=tuple(returns),
            total_billed=billed,
            total_paid=paid,
            total_refunded=sum((r.total_refund for r in returns), rules.ZERO),
            outstanding=billed - paid,
        )

    def stock_out_history(self) -> list[StockOutRow]:
        return [StockOutRow(item=i, sale=s, color=c) for i, s, c in self.repo.stock_out_rows()]

    def export_sales_report_excel(self, path: str, start_iso: str, end_iso: str) -> None:
        wb = Workbook()

        sales_rows = self.repo.list_sales_between(start_iso, end_iso)
        sale_ids = {s.id for s in sales_rows}
        payments = [p for p in self.repo.list_all_payments() if start_iso <= p.created_at < end_iso]
        colors = {c.id: c for c in self.repo.list_colors()}

        revenue = sum((s.total_amount for s in sales_rows), rules.ZERO)
        collected = sum((s.amount_paid for s in sales_rows), rules.ZERO)

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = "Summary"
        ws["A1"].font = Font(bold=True, size=14)

        ws["A3"] = "Window"
        ws["B3"] = f"{start_iso}  ->  {end_iso}"

        rows = [
            ("Sales count", len(sales_rows), "int"),
            ("Billed", revenue, "money"),
            ("Collected on these bills", collected, "money"),
            ("Outstanding on these bills", revenue - collected, "money"),
            ("Payments received in window", sum((p.amount for p in payments), rules.ZERO), "money"),
        ]
        for i, (label, val, kind) in enumerate(rows):
            r = 5 + i
            ws[f"A{r}"] = label
            ws[f"B{r}"] = val
            if kind == "money":
                _money(ws[f"B{r}"])
        _set_widths(ws, {"A": 30, "B": 34})

        # -------- 2) Sales Detail --------
        ws2 = wb.create_sheet("Sales Detail")
        ws2.append([
            "Sale ID", "Datetime", "Customer", "Phone", "Status",
            "Company", "Product", "Packing", "Color Code", "Color Name",
            "Qty", "Rate", "Subtotal",
        ])
        _bold_row(ws2, 1)

        out_row = 2
        for s in sales_rows:
            for it in s.items:
                color = colors.get(it.color_id)
                variant = color.variant if color else None
                product = variant.product if variant else None
                ws2.append([
                    s.id, s.created_at, s.customer_name, s.customer_phone, s.payment_status,
                    product.company if product else "", product.product_name if product else "",
                    variant.packing_size if variant else "",
                    color.color_code if color else "", color.color_name if color else "",
                    it.quantity, it.rate, it.subtotal,
                ])
                _money(ws2[f"L{out_row}"])
                _money(ws2[f"M{out_row}"])
                out_row += 1

        ws2.freeze_panes = "A2"
        _set_widths(ws2, {
            "A": 38, "B": 32, "C": 24, "D": 16, "E": 10,
            "F": 18, "G": 24, "H": 10, "I": 12, "J": 20,
            "K": 6, "L": 14, "M": 14,
        })
        if ws2.max_row >= 2:
            _add_table(ws2, "SalesDetail", 1, 1, ws2.max_row, 13)

        # -------- 3) Payments --------
        ws3 = wb.create_sheet("Payments")
        ws3.append([
            "Payment ID", "Datetime", "Sale ID", "Phone", "Method",
            "Amount", "Previous Balance", "New Balance", "Notes", "Bill In Window",
        ])
        _bold_row(ws3, 1)

        out_row = 2
        for p in payments:
            ws3.append([
                p.id, p.created_at, p.sale_id, p.customer_phone, p.payment_method,
                p.amount, p.previous_balance, p.new_balance, p.notes or "",
                "yes" if p.sale_id in sale_ids else "no",
            ])
            for col in ("F", "G", "H"):
                _money(ws3[f"{col}{out_row}"])
            out_row += 1

        ws3.freeze_panes = "A2"
        _set_widths(ws3, {
            "A": 38, "B": 32, "C": 38, "D": 16, "E": 10,
            "F": 14, "G": 16, "H": 14, "I": 28, "J": 14,
        })
        if ws3.max_row >= 2:
            _add_table(ws3, "PaymentsDetail", 1, 1, ws3.max_row, 10)

        wb.save(path)

    def export_customer_statement_excel(self, path: str, customer_phone: str) -> None:
        st = self.customer_statement(customer_phone)
        wb = Workbook()

        ws = wb.active
        ws.title = "Statement"
        name = st.sales[0].customer_name if st.sales else ""
        ws["A1"] = f"Statement: {name}".strip()
        ws["A1"].font = Font(bold=True, size=14)
        ws["A2"] = customer_phone

        rows = [
            ("Total billed", st.total_billed),
            ("Total paid", st.total_paid),
            ("Outstanding", st.outstanding),
            ("Refunded through returns", st.total_refunded),
        ]
        for i, (label, val) in enumerate(rows):
            r = 4 + i
            ws[f"A{r}"] = label
            ws[f"B{r}"] = val
            _money(ws[f"B{r}"])

        ws.append([])
        ws.append(["Date", "Type", "Reference", "Debit", "Credit", "Due Date", "Notes"])
        header_row = ws.max_row
        _bold_row(ws, header_row)

        entries: list[tuple[str, str, str, Optional[Decimal], Optional[Decimal], str, str]] = []
        for s in st.sales:
            kind = "Balance" if s.is_manual_balance else "Bill"
            entries.append((s.created_at, kind, s.id, s.total_amount, None, s.due_date or "", s.notes or ""))
        for p in st.payments:
            entries.append((p.created_at, f"Payment ({p.payment_method})", p.sale_id, None, p.amount, "", p.notes or ""))
        for r in st.returns:
            entries.append((r.created_at, "Return", r.id, None, None, "", f"Refund {rules.money_str(r.total_refund)}"))
        entries.sort(key=lambda e: e[0])

        first = header_row + 1
        for offset, entry in enumerate(entries):
            ws.append(list(entry))
            _money(ws[f"D{first + offset}"])
            _money(ws[f"E{first + offset}"])

        _set_widths(ws, {"A": 32, "B": 26, "C": 38, "D": 14, "E": 14, "F": 12, "G": 30})
        if entries:
            _add_table(ws, "StatementLines", header_row, 1, ws.max_row, 7)

        wb.save(path)


def _money(cell) -> None:
    cell.number_format = "#,##0.00"


def _bold_row(ws, r: int) -> None:
    for c in ws[r]:
        c.font = Font(bold=True)


def _set_widths(ws, widths: dict[str, int]) -> None:
    for col, w in widths.items():
        ws.column_dimensions[col].width = w


def _add_table(ws, name: str, start_row: int, start_col: int, end_row: int, end_col: int) -> None:
    ref = f"{get_column_letter(start_col)}{start_row}:{get_column_letter(end_col)}{end_row}"
    tab = Table(displayName=name, ref=ref)
    tab.tableStyleInfo = TableStyleInfo(
        name="TableStyleMedium9",
        showRowStripes=True,
        showColumnStripes=False,
    )
    ws.add_table(tab)
