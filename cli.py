import asyncio
import functools
import json
import logging
from pathlib import Path

import click

from config.constants import CalculationMode, PaymentFrequency, ProgramType, WireFeeType
from config.settings import EXCEL_FILE, LOG_FORMAT, LOG_LEVEL
from core.calculator import calc_program_costs, period_surcharge, program_period_bounds
from core.errors import PaymentPlanError
from core.policy import ConfigurationService, excel_policy_source
from core.service import CalculationService
from core.summary import footer_totals, schedule_frame
from core.versions import DraftVersionManager
from core.wire_fees import WireFeeLedger
from data_manager.excel_handler import (
    ExcelPlanStore,
    get_all_config,
    get_config,
    init_excel,
    seed_policy_config,
    set_config,
)
from data_manager.data_validator import validate_policy_value
from data_manager.schema import PlanTotals
from utils.formatters import fmt_amount, fmt_periods


def handles_plan_errors(fn):
    """把引擎异常转成 click 错误输出（kind: message）"""
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except PaymentPlanError as exc:
            raise click.ClickException(exc.describe()) from exc
    return wrapper


def plan_options(fn):
    """计算类命令共用的方案参数"""
    options = [
        click.option('--total-debt', type=float, required=True, help='Total enrolled debt'),
        click.option('--current-payment', type=float, default=None, help='Current weekly payment'),
        click.option('--program-type', type=click.Choice([e.value for e in ProgramType]), default=ProgramType.STANDARD_SPLIT.value, help='Program type'),
        click.option('--frequency', type=click.Choice([e.value for e in PaymentFrequency]), default=PaymentFrequency.WEEKLY.value, help='Payment frequency'),
        click.option('--mode', type=click.Choice([e.value for e in CalculationMode]), default=CalculationMode.PERCENT_OF_CURRENT.value, help='Calculation mode'),
        click.option('--percent', type=float, default=None, help='Target percent of current payment'),
        click.option('--amount', type=float, default=None, help='Desired payment per period'),
        click.option('--first-date', type=click.DateTime(formats=['%Y-%m-%d']), default=None, help='First payment date (YYYY-MM-DD)'),
        click.option('--weekday', type=click.IntRange(0, 6), default=None, help='Preferred weekday (0=Mon)'),
        click.option('--no-fee', is_flag=True, help='No-fee program'),
        click.option('--product', 'products', multiple=True, help='Additional product code'),
        click.option('--setup-payments', type=int, default=None, help='Number of payments for the setup fee'),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def _config_service(ctx) -> ConfigurationService:
    return ConfigurationService(excel_policy_source(ctx.obj['data_file']))


def _build(ctx, program_type, frequency, mode, percent, amount, first_date, weekday, no_fee, products, setup_payments):
    return _config_service(ctx).build_configuration(
        program_type=program_type,
        payment_frequency=frequency,
        calculation_mode=mode,
        target_percent=percent,
        target_amount=amount,
        first_payment_date=first_date.date() if first_date else None,
        preferred_weekday=weekday,
        no_fee_program=no_fee,
        selected_product_codes=products,
        setup_fee_payments=setup_payments,
    )


def _echo_summary(summary, frequency):
    click.echo(f"Settlement amount: {fmt_amount(summary.settlement_amount)}")
    click.echo(f"Program fee: {fmt_amount(summary.program_fee)}")
    click.echo(f"Total program cost: {fmt_amount(summary.total_program_cost)}")
    click.echo(f"Payment per period: {fmt_amount(summary.period_payment)}")
    click.echo(f"Net per period: {fmt_amount(summary.net_per_period)}")
    click.echo(f"Duration: {fmt_periods(summary.number_of_periods, frequency)}")
    if summary.duration_clamped:
        click.echo("Note: duration was clamped to the program length limits")
    if summary.weekly_savings is not None:
        click.echo(f"Weekly savings: {fmt_amount(summary.weekly_savings)} ({summary.savings_percent:.2f}%)")


@click.group()
@click.option('--data-file', type=click.Path(path_type=Path), default=EXCEL_FILE, help='Workbook path')
@click.option('--verbose', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, data_file, verbose):
    """A CLI for the payment plan workbench."""
    logging.basicConfig(level=logging.DEBUG if verbose else LOG_LEVEL, format=LOG_FORMAT)
    ctx.ensure_object(dict)
    ctx.obj['data_file'] = data_file

@cli.command('init-store')
@click.option('--seed', type=click.Path(exists=True, path_type=Path), default=None, help='JSON file with program policy values')
@click.pass_context
def init_store(ctx, seed):
    """Creates the workbook and optionally seeds the program policy."""
    init_excel(ctx.obj['data_file'])
    if seed is not None:
        values = json.loads(seed.read_text(encoding='utf-8'))
        try:
            seed_policy_config(values, ctx.obj['data_file'])
        except KeyError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"Seeded {len(values)} policy values.")
    click.echo(f"Workbook ready at {ctx.obj['data_file']}")

@cli.command('calculate')
@plan_options
@click.option('--csv', 'as_csv', is_flag=True, help='Print the schedule as CSV')
@click.pass_context
@handles_plan_errors
def calculate(ctx, total_debt, current_payment, program_type, frequency, mode, percent, amount, first_date, weekday, no_fee, products, setup_payments, as_csv):
    """Calculates a payment schedule without saving it."""
    config = _build(ctx, program_type, frequency, mode, percent, amount, first_date, weekday, no_fee, products, setup_payments)
    totals = PlanTotals(total_debt, current_payment)
    result = asyncio.run(CalculationService().calculate(config, totals))
    if result.bound is not None and result.bound.clamped:
        click.echo(f"Note: {result.bound.field} clamped from {result.bound.requested} to {result.bound.applied}")
    _echo_summary(result.summary, frequency)
    if as_csv:
        click.echo(schedule_frame(result.items).to_csv(index=False))

@cli.command('duration')
@plan_options
@click.option('--payment', type=float, required=True, help='Payment per period')
@click.pass_context
@handles_plan_errors
def duration(ctx, total_debt, current_payment, program_type, frequency, mode, percent, amount, first_date, weekday, no_fee, products, setup_payments, payment):
    """Calculates the number of payments for a given payment amount."""
    config = _build(ctx, program_type, frequency, mode, percent, amount, first_date, weekday, no_fee, products, setup_payments)
    periods = asyncio.run(CalculationService().calculate_duration_from_amount(config, PlanTotals(total_debt, current_payment), payment))
    click.echo(f"Number of payments: {periods} ({fmt_periods(periods, frequency)})")

@cli.command('amount')
@plan_options
@click.option('--periods', type=int, required=True, help='Desired number of payments')
@click.pass_context
@handles_plan_errors
def amount_command(ctx, total_debt, current_payment, program_type, frequency, mode, percent, amount, first_date, weekday, no_fee, products, setup_payments, periods):
    """Calculates the payment amount needed to finish in a given number of payments."""
    config = _build(ctx, program_type, frequency, mode, percent, amount, first_date, weekday, no_fee, products, setup_payments)
    low, high = program_period_bounds(config)
    if not low <= periods <= high:
        click.echo(f"Warning: {periods} is outside the program limits ({low}-{high})")
    payment = asyncio.run(CalculationService().calculate_amount_from_duration(config, PlanTotals(total_debt, current_payment), periods))
    _, _, _, total_cost = calc_program_costs(total_debt, config.settlement_percent, config.program_fee_percent, config.no_fee_program)
    click.echo(f"Payment per period: {fmt_amount(payment)}")
    click.echo(f"Fees per period: {fmt_amount(period_surcharge(config))}")
    click.echo(f"Total program cost: {fmt_amount(total_cost)}")

@cli.command('create')
@click.option('--case-id', type=str, required=True, help='Case ID')
@click.option('--created-by', type=str, default='cli', help='Operator name')
@plan_options
@click.pass_context
@handles_plan_errors
def create(ctx, case_id, created_by, total_debt, current_payment, program_type, frequency, mode, percent, amount, first_date, weekday, no_fee, products, setup_payments):
    """Creates a new draft version for a case."""
    config = _build(ctx, program_type, frequency, mode, percent, amount, first_date, weekday, no_fee, products, setup_payments)
    manager = DraftVersionManager(ExcelPlanStore(ctx.obj['data_file']))
    version = manager.create(case_id, config, PlanTotals(total_debt, current_payment), created_by)
    click.echo(f"Created draft {version.version_id} (v{version.version_number}, {len(version.items)} payments, primary={version.is_primary})")

@cli.command('list-versions')
@click.option('--case-id', type=str, required=True, help='Case ID')
@click.pass_context
def list_versions(ctx, case_id):
    """Lists all versions of a case."""
    versions = DraftVersionManager(ExcelPlanStore(ctx.obj['data_file'])).versions(case_id)
    if not versions:
        click.echo(f"No versions for case '{case_id}'.")
        return
    for v in versions:
        marker = '*' if v.is_primary else ' '
        click.echo(f"{marker} v{v.version_number} {v.version_id} {v.status:<9} {v.sync_status:<11} {len(v.items)} payments, by {v.created_by}")

@cli.command('show-version')
@click.option('--version-id', type=str, required=True, help='Version ID')
@click.pass_context
@handles_plan_errors
def show_version(ctx, version_id):
    """Shows the schedule of a version as CSV."""
    manager = DraftVersionManager(ExcelPlanStore(ctx.obj['data_file']))
    version = manager.get(version_id, 'show')
    changed = manager.modified_sequence_numbers(version)
    click.echo(schedule_frame(version.items, changed).to_csv(index=False))
    totals = footer_totals(version.items)
    click.echo(' | '.join(f"{k}: {v:,.2f}" for k, v in totals.items()))

@cli.command('recalculate')
@click.option('--version-id', type=str, required=True, help='Version ID')
@click.option('--total-debt', type=float, required=True, help='Total enrolled debt')
@click.option('--current-payment', type=float, default=None, help='Current weekly payment')
@click.option('--created-by', type=str, default='cli', help='Operator name')
@click.pass_context
@handles_plan_errors
def recalculate(ctx, version_id, total_debt, current_payment, created_by):
    """Regenerates the scheduled payments of a version into a new draft."""
    manager = DraftVersionManager(ExcelPlanStore(ctx.obj['data_file']))
    version = manager.recalculate(version_id, PlanTotals(total_debt, current_payment), created_by=created_by)
    click.echo(f"Recalculated into draft {version.version_id} (v{version.version_number})")

@cli.command('activate')
@click.option('--version-id', type=str, required=True, help='Version ID')
@click.pass_context
@handles_plan_errors
def activate(ctx, version_id):
    """Activates a draft version."""
    version = DraftVersionManager(ExcelPlanStore(ctx.obj['data_file'])).activate(version_id)
    click.echo(f"Version {version.version_id} is now {version.status}.")

@cli.command('suspend')
@click.option('--version-id', type=str, required=True, help='Version ID')
@click.option('--created-by', type=str, default='cli', help='Operator name')
@click.pass_context
@handles_plan_errors
def suspend(ctx, version_id, created_by):
    """Suspends an active version, cancelling its scheduled payments."""
    version = DraftVersionManager(ExcelPlanStore(ctx.obj['data_file'])).suspend(version_id, created_by)
    click.echo(f"Suspended into {version.version_id} (v{version.version_number}).")

@cli.command('set-primary')
@click.option('--version-id', type=str, required=True, help='Version ID')
@click.pass_context
@handles_plan_errors
def set_primary(ctx, version_id):
    """Marks a version as the primary version of its case."""
    DraftVersionManager(ExcelPlanStore(ctx.obj['data_file'])).set_primary(version_id)
    click.echo(f"Version {version_id} is now primary.")

@cli.command('delete-version')
@click.option('--version-id', type=str, required=True, help='Version ID')
@click.pass_context
@handles_plan_errors
def delete_version(ctx, version_id):
    """Deletes a draft or archived version."""
    DraftVersionManager(ExcelPlanStore(ctx.obj['data_file'])).delete(version_id)
    click.echo(f"Version {version_id} deleted.")

@cli.command('invalidate')
@click.option('--case-id', type=str, required=True, help='Case ID')
@click.option('--version-id', 'version_ids', multiple=True, help='Affected version IDs (default: all drafts)')
@click.pass_context
def invalidate(ctx, case_id, version_ids):
    """Marks versions of a case as out of sync after an external change."""
    versions = DraftVersionManager(ExcelPlanStore(ctx.obj['data_file'])).handle_invalidation(case_id, list(version_ids) or None)
    for v in versions:
        click.echo(f"{v.version_id} {v.status} {v.sync_status}")

@cli.command('add-wire-fee')
@click.option('--item-id', type=str, required=True, help='Schedule item ID')
@click.option('--fee-type', type=click.Choice([e.value for e in WireFeeType]), required=True, help='Fee type')
@click.option('--amount', type=float, default=None, help='Fee amount')
@click.pass_context
@handles_plan_errors
def add_wire_fee(ctx, item_id, fee_type, amount):
    """Attaches a wire fee to a schedule item."""
    fee = WireFeeLedger(ExcelPlanStore(ctx.obj['data_file'])).add_fee(item_id, fee_type, amount)
    click.echo(f"Wire fee {fee.fee_id} added.")

@cli.command('list-wire-fees')
@click.option('--version-id', type=str, required=True, help='Version ID')
@click.pass_context
@handles_plan_errors
def list_wire_fees(ctx, version_id):
    """Lists the wire fees attached to a version's payments."""
    store = ExcelPlanStore(ctx.obj['data_file'])
    version = DraftVersionManager(store).get(version_id, 'list wire fees of')
    click.echo(WireFeeLedger(store).ledger_frame(version.items).to_string())

@cli.command('delete-wire-fee')
@click.option('--fee-id', type=str, required=True, help='Wire fee ID')
@click.pass_context
def delete_wire_fee(ctx, fee_id):
    """Deletes a wire fee."""
    if WireFeeLedger(ExcelPlanStore(ctx.obj['data_file'])).delete_fee(fee_id):
        click.echo(f"Wire fee {fee_id} deleted.")
    else:
        click.echo(f"Wire fee with ID '{fee_id}' not found.")

@cli.command('list-configs')
@click.pass_context
def list_configs(ctx):
    """Lists all policy configuration values."""
    configs = get_all_config(ctx.obj['data_file'])
    click.echo(configs.to_string())

@cli.command('get-config')
@click.option('--key', type=str, required=True, help='Config key')
@click.pass_context
def get_config_command(ctx, key):
    """Gets a policy configuration value by its key."""
    value = get_config(key, ctx.obj['data_file'])
    if value is not None:
        click.echo(value)
    else:
        click.echo(f"Config with key '{key}' not found.")

@cli.command('set-config')
@click.option('--key', type=str, required=True, help='Config key')
@click.option('--value', type=str, required=True, help='Config value')
@click.option('--description', type=str, default='', help='Description')
@click.pass_context
def set_config_command(ctx, key, value, description):
    """Sets a policy configuration value."""
    ok, msg = validate_policy_value(key, value)
    if not ok:
        raise click.ClickException(msg)
    set_config(key, value, description, ctx.obj['data_file'])
    click.echo(f"Config with key '{key}' set successfully.")

if __name__ == "__main__":
    cli()
