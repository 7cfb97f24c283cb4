import argparse
import asyncio

from fitness_coach.bot import FitnessBot
from fitness_coach.config import configure_logging, load_settings
from fitness_coach.db import FitnessDB


def _build_bot(run_scheduler: bool) -> FitnessBot:
    settings = load_settings()
    configure_logging(settings.log_level, settings.telegram_bot_token)
    return FitnessBot(
        settings=settings,
        repository=FitnessDB(settings.database_url),
        run_scheduler=run_scheduler,
    )


def run_bot() -> None:
    _build_bot(run_scheduler=True).run()


async def _notify_once(bot: FitnessBot) -> None:
    async with bot.app:
        reports = await bot.send_due_notifications()
    if not reports:
        print("No triggers due.")
        return
    for report in reports:
        print(
            f"- {report.trigger} ({report.period_key}): sent {report.sent}, "
            f"skipped {report.skipped}, failed {len(report.failed)}"
        )


def run_notify() -> None:
    asyncio.run(_notify_once(_build_bot(run_scheduler=False)))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Fitness coach bot")
    parser.add_argument(
        "command",
        nargs="?",
        default="bot",
        choices=["bot", "notify"],
        help="Run mode: bot (default, polling + scheduler) or notify (fire due notifications once)",
    )
    args = parser.parse_args()

    if args.command == "notify":
        run_notify()
    else:
        run_bot()
