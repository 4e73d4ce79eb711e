import click
from app.core.database import SessionLocal
from app.core.exceptions import AppError
from app.models.user import User
from app.services.analytics_service import AnalyticsService
from app.services.quota_service import QuotaService
from app.services.subscription_service import PlanCatalog, SubscriptionService
import logging

logger = logging.getLogger(__name__)


def _analytics() -> AnalyticsService:
    # CLI runs without Firebase
    return AnalyticsService(enabled=False)


def _find_user(db, email, user_id):
    if not email and not user_id:
        click.echo("❌ Please provide --email or --id for this operation", err=True)
        return None

    if user_id:
        user = db.query(User).filter(User.id == user_id).first()
    else:
        user = db.query(User).filter(User.email == email).first()

    if not user:
        click.echo(f"❌ User not found: {user_id or email}", err=True)
    return user


@click.group()
def cli():
    """SchoolAI admin commands"""
    pass


@cli.command('seed-plans')
def seed_plans():
    """Create the default plans that are missing"""
    db = SessionLocal()
    try:
        created = PlanCatalog(analytics=_analytics()).seed_plans(db)
        click.echo(f"✓ Seeded {created} plans")
    except Exception as e:
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


@cli.command('grant-subscription')
@click.option('--email', required=False, help='User email')
@click.option('--id', 'user_id', required=False, help='User id (Firebase UID)')
@click.option('--plan', 'plan_name', required=True, help='Plan name (freemium, standard, premium, pro)')
@click.option('--days', 'duration_days', type=int, required=False, help='Subscription length in days (open-ended if omitted)')
@click.option('--no-auto-renew', 'no_auto_renew', is_flag=True, help='Disable auto renewal')
def grant_subscription(email, user_id, plan_name, duration_days, no_auto_renew):
    """Put a user on a plan, replacing the active subscription"""
    db = SessionLocal()
    try:
        user = _find_user(db, email, user_id)
        if not user:
            return

        service = SubscriptionService(analytics=_analytics())
        subscription = service.grant_subscription(
            db, user.id, plan_name, duration_days=duration_days, auto_renew=not no_auto_renew
        )
        click.echo(f"✓ {user.email} is now on {plan_name} (subscription {subscription.id})")
    except AppError as e:
        click.echo(f"❌ {e.message}", err=True)
    except Exception as e:
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


@cli.command('expire-subscriptions')
def expire_subscriptions():
    """Expire active subscriptions whose end date has passed"""
    db = SessionLocal()
    try:
        count = SubscriptionService(analytics=_analytics()).expire_subscriptions(db)
        click.echo(f"✓ Expired {count} subscriptions")
    except Exception as e:
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


@cli.command('quota-status')
@click.option('--email', required=False, help='User email')
@click.option('--id', 'user_id', required=False, help='User id (Firebase UID)')
def quota_status(email, user_id):
    """Show today's question usage for a user"""
    db = SessionLocal()
    try:
        user = _find_user(db, email, user_id)
        if not user:
            return

        status = QuotaService(analytics=_analytics()).status(db, user.id)
        click.echo(
            f"{user.email}: {status['used']}/{status['limit']} used, "
            f"{status['remaining']} remaining (resets {status['resetAt']})"
        )
    except Exception as e:
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


if __name__ == '__main__':
    cli()
