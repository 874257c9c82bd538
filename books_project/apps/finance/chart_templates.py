"""
UAE base chart of accounts, industry add-ons and the default role mappings.

Rows are (code, name, type, sub_type, parent_code). Header rows have no
parent and are marked as system accounts. Industry rows hang off the
base headers and are loaded on top of the base chart.
"""
from apps.core.exceptions import ValidationError


UAE_BASE_CHART = [
    # Assets
    ('1000', 'Assets', 'asset', '', None),
    ('1110', 'Cash on Hand', 'asset', 'current_asset', '1000'),
    ('1120', 'Bank Accounts', 'asset', 'current_asset', '1000'),
    ('1210', 'Trade Receivables', 'asset', 'current_asset', '1000'),
    ('1310', 'VAT Input (Recoverable)', 'asset', 'current_asset', '1000'),
    ('1410', 'Inventory', 'asset', 'current_asset', '1000'),
    ('1610', 'Furniture & Fixtures', 'asset', 'fixed_asset', '1000'),
    ('1620', 'IT Equipment', 'asset', 'fixed_asset', '1000'),
    ('1630', 'Vehicles', 'asset', 'fixed_asset', '1000'),

    # Liabilities
    ('2000', 'Liabilities', 'liability', '', None),
    ('2110', 'Trade Payables', 'liability', 'current_liability', '2000'),
    ('2210', 'VAT Output (Payable)', 'liability', 'current_liability', '2000'),
    ('2410', 'Salaries Payable', 'liability', 'current_liability', '2000'),
    ('2420', 'Payroll Deductions Payable', 'liability', 'current_liability', '2000'),
    ('2510', 'End of Service Benefits Provision', 'liability', 'long_term_liability', '2000'),
    ('2610', 'Bank Loans', 'liability', 'long_term_liability', '2000'),

    # Equity
    ('3000', 'Equity', 'equity', '', None),
    ('3100', 'Share Capital', 'equity', 'equity', '3000'),
    ('3200', 'Retained Earnings', 'equity', 'equity', '3000'),
    ('3300', 'Opening Balance Equity', 'equity', 'equity', '3000'),

    # Revenue
    ('4000', 'Revenue', 'revenue', '', None),
    ('4100', 'Sales Revenue', 'revenue', 'income', '4000'),
    ('4200', 'Service Revenue', 'revenue', 'income', '4000'),
    ('4300', 'Other Income', 'revenue', 'other_income', '4000'),

    # Cost of sales
    ('5000', 'Cost of Sales', 'cogs', '', None),
    ('5100', 'Cost of Goods Sold', 'cogs', 'cost_of_sales', '5000'),

    # Expenses
    ('6000', 'Operating Expenses', 'expense', '', None),
    ('6110', 'Basic Salaries', 'expense', 'operating_expense', '6000'),
    ('6120', 'Housing Allowances', 'expense', 'operating_expense', '6000'),
    ('6200', 'Rent Expense', 'expense', 'operating_expense', '6000'),
    ('6300', 'Utilities', 'expense', 'operating_expense', '6000'),
    ('6400', 'Office Supplies', 'expense', 'operating_expense', '6000'),
    ('6900', 'Bank Charges', 'expense', 'operating_expense', '6000'),
]

INDUSTRY_CHARTS = {
    'general': [],
    'healthcare': [
        ('1220', 'Insurance Receivables', 'asset', 'current_asset', '1000'),
        ('1230', 'Patient Receivables', 'asset', 'current_asset', '1000'),
        ('4150', 'Patient Revenue', 'revenue', 'income', '4000'),
        ('4160', 'Insurance Revenue', 'revenue', 'income', '4000'),
        ('5150', 'Medical Supplies', 'cogs', 'cost_of_sales', '5000'),
        ('5160', 'Lab Costs', 'cogs', 'cost_of_sales', '5000'),
        ('6930', 'DHA/MOH License Fees', 'expense', 'operating_expense', '6000'),
        ('6940', 'Medical Equipment Maintenance', 'expense', 'operating_expense', '6000'),
    ],
    'retail': [
        ('1130', 'Petty Cash', 'asset', 'current_asset', '1000'),
        ('1250', 'POS Clearing Account', 'asset', 'current_asset', '1000'),
        ('1415', 'Inventory - Goods for Resale', 'asset', 'current_asset', '1000'),
        ('4110', 'Sales - In-Store', 'revenue', 'income', '4000'),
        ('4120', 'Sales - Online', 'revenue', 'income', '4000'),
        ('5050', 'Purchase Returns', 'cogs', 'cost_of_sales', '5000'),
        ('5060', 'Freight Inward', 'cogs', 'cost_of_sales', '5000'),
        ('6950', 'Packaging Materials', 'expense', 'operating_expense', '6000'),
    ],
    'trading': [
        ('1270', 'Margin Account', 'asset', 'current_asset', '1000'),
        ('1280', 'Securities Held', 'asset', 'current_asset', '1000'),
        ('4470', 'Trading Gains', 'revenue', 'income', '4000'),
        ('4480', 'Dividend Income', 'revenue', 'other_income', '4000'),
        ('4490', 'Interest Income', 'revenue', 'other_income', '4000'),
        ('5500', 'Trading Losses', 'cogs', 'cost_of_sales', '5000'),
        ('6925', 'Brokerage Fees', 'expense', 'operating_expense', '6000'),
    ],
    'construction': [
        ('1350', 'Retention Receivable', 'asset', 'current_asset', '1000'),
        ('1500', 'Work in Progress', 'asset', 'current_asset', '1000'),
        ('1550', 'Contract Assets', 'asset', 'current_asset', '1000'),
        ('2350', 'Retention Payable', 'liability', 'current_liability', '2000'),
        ('2360', 'Contract Liabilities', 'liability', 'current_liability', '2000'),
        ('4350', 'Project Revenue', 'revenue', 'income', '4000'),
        ('5300', 'Sub-contractor Costs', 'cogs', 'cost_of_sales', '5000'),
        ('5400', 'Equipment Costs', 'cogs', 'cost_of_sales', '5000'),
        ('6960', 'Site Expenses', 'expense', 'operating_expense', '6000'),
    ],
    'real_estate': [
        ('1650', 'Investment Properties', 'asset', 'fixed_asset', '1000'),
        ('1660', 'Properties Under Development', 'asset', 'fixed_asset', '1000'),
        ('2400', 'Security Deposits Held', 'liability', 'current_liability', '2000'),
        ('2450', 'Maintenance Reserve', 'liability', 'current_liability', '2000'),
        ('4450', 'Rental Income', 'revenue', 'income', '4000'),
        ('4460', 'Property Management Fees', 'revenue', 'income', '4000'),
        ('6150', 'Commission Expense', 'expense', 'operating_expense', '6000'),
        ('6970', 'Property Maintenance', 'expense', 'operating_expense', '6000'),
    ],
    'hospitality': [
        ('1260', 'Guest Ledger', 'asset', 'current_asset', '1000'),
        ('1420', 'Food & Beverage Inventory', 'asset', 'current_asset', '1000'),
        ('4170', 'Room Revenue', 'revenue', 'income', '4000'),
        ('4180', 'F&B Revenue', 'revenue', 'income', '4000'),
        ('4190', 'Other Hotel Revenue', 'revenue', 'income', '4000'),
        ('5170', 'Food Cost', 'cogs', 'cost_of_sales', '5000'),
        ('5180', 'Beverage Cost', 'cogs', 'cost_of_sales', '5000'),
        ('6100', 'Tourism Dirham Fee', 'expense', 'operating_expense', '6000'),
    ],
    'professional_services': [
        ('1240', 'Unbilled Revenue', 'asset', 'current_asset', '1000'),
        ('4250', 'Consulting Revenue', 'revenue', 'income', '4000'),
        ('4260', 'Advisory Fees', 'revenue', 'income', '4000'),
        ('6980', 'Professional Development', 'expense', 'operating_expense', '6000'),
        ('6990', 'Subscriptions & Memberships', 'expense', 'operating_expense', '6000'),
    ],
    'manufacturing': [
        ('1430', 'Raw Materials', 'asset', 'current_asset', '1000'),
        ('1440', 'Work in Progress', 'asset', 'current_asset', '1000'),
        ('1450', 'Finished Goods', 'asset', 'current_asset', '1000'),
        ('5200', 'Direct Labor', 'cogs', 'cost_of_sales', '5000'),
        ('5210', 'Direct Materials', 'cogs', 'cost_of_sales', '5000'),
        ('5220', 'Manufacturing Overhead', 'cogs', 'cost_of_sales', '5000'),
        ('6915', 'Factory Expenses', 'expense', 'operating_expense', '6000'),
    ],
}

INDUSTRIES = list(INDUSTRY_CHARTS)

# (transaction_type, module, account code)
DEFAULT_MAPPINGS = [
    ('sales_invoice_receivable', 'sales', '1210'),
    ('sales_invoice_vat', 'sales', '2210'),
    ('vendor_bill_payable', 'purchase', '2110'),
    ('vendor_bill_vat', 'purchase', '1310'),
    ('cash_bank', 'banking', '1120'),
    ('payroll_salary_expense', 'payroll', '6110'),
    ('payroll_housing_expense', 'payroll', '6120'),
    ('payroll_salary_payable', 'payroll', '2410'),
    ('payroll_deductions', 'payroll', '2420'),
    ('opening_balance_equity', 'general', '3300'),
]


def industry_chart(industry='general'):
    """Base chart rows followed by the add-on rows for `industry`."""
    if industry not in INDUSTRY_CHARTS:
        raise ValidationError(
            f"Unknown industry '{industry}'. Expected one of: {', '.join(INDUSTRIES)}."
        )
    return UAE_BASE_CHART + INDUSTRY_CHARTS[industry]
