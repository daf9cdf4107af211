import asyncio
import logging
from typing import Optional

import discord
from discord import Interaction, app_commands
from discord.ext import commands

from athlete_badges.achievements.catalog import BadgeDraft
from athlete_badges.achievements.definitions import Badge, CoachOrigin, Rule
from athlete_badges.achievements.engine import BadgeEngine, ProgressReport
from athlete_badges.achievements.errors import AchievementError
from athlete_badges.models.student import Student
from athlete_badges.utils.constants import ALL_SPORTS, BADGE_LEVELS

logger = logging.getLogger(__name__)

LEVEL_CHOICES = [
    app_commands.Choice(name=level.title(), value=level) for level in BADGE_LEVELS
]


def parse_rules(text: str) -> tuple[Rule, ...]:
    '''
    Parse `field op threshold [weight] [required]` clauses separated by `;`,
    e.g. `runs gte 500 2; fitness_test_passed eq 1 required`.
    '''
    rules: list[Rule] = []
    for idx, clause in enumerate(filter(None, map(str.strip, text.split(';'))), 1):
        parts = clause.split()
        is_required = parts[-1].lower() == 'required'
        if is_required:
            parts = parts[:-1]
        if len(parts) not in (3, 4):
            raise ValueError(f'Rule {idx} should be `field op threshold [weight]`')
        try:
            threshold = float(parts[2])
            weight = float(parts[3]) if len(parts) == 4 else 1.0
        except ValueError:
            raise ValueError(f'Rule {idx} needs numeric threshold and weight') from None
        rules.append(
            Rule(
                id=f'draft-{idx}',
                field_name=parts[0],
                operator=parts[1].lower(),
                threshold=int(threshold) if threshold.is_integer() else threshold,
                weight=weight,
                is_required=is_required,
            )
        )
    if not rules:
        raise ValueError('At least one rule is required')
    return tuple(rules)


def split_ids(text: Optional[str]) -> list[str]:
    return [s.strip() for s in (text or '').split(',') if s.strip()]


def badge_line(badge: Badge) -> str:
    line = f'{badge.icon} **{badge.name}** [{badge.level.title()}] `{badge.id}`'
    if badge.sport.upper() != ALL_SPORTS:
        line += f' • {badge.sport.title()}'
    if badge.target_student_ids:
        line += f' • {len(badge.target_student_ids)} student(s)'
    return line


def progress_bar(percent: int, width: int = 10) -> str:
    filled = max(0, min(width, round(percent * width / 100)))
    return '█' * filled + '░' * (width - filled)


def chunk_lines(lines: list[str], max_len: int = 900) -> list[str]:
    '''Group lines into blocks that fit an embed field.'''
    chunks: list[str] = []
    cur: list[str] = []
    cur_len = 0
    for ln in lines:
        add_len = len(ln) + 1
        if cur_len + add_len > max_len and cur:
            chunks.append('\n'.join(cur))
            cur, cur_len = [], 0
        cur.append(ln)
        cur_len += add_len
    if cur:
        chunks.append('\n'.join(cur))
    return chunks


def progress_embed(report: ProgressReport, earned_ids: set[str]) -> discord.Embed:
    embed = discord.Embed(
        title=f'Badge progress for student {report.student_id}',
        color=discord.Color.gold(),
    )
    earned_lines: list[str] = []
    open_lines: list[str] = []
    for result in sorted(report.results, key=lambda r: -r.progress_percent):
        badge = report.badges[result.badge_id]
        label = f'{badge.icon} {badge.name} [{badge.level.title()}]'
        if result.badge_id in earned_ids:
            earned_lines.append(f'🏆 {label}')
        else:
            bar = progress_bar(result.progress_percent)
            open_lines.append(f'{label}\n`{bar}` {result.progress_percent}%')

    for title, lines in (('Earned', earned_lines), ('In progress', open_lines)):
        for idx, block in enumerate(chunk_lines(lines), start=1):
            embed.add_field(
                name=title if idx == 1 else f'{title} (cont.)',
                value=block,
                inline=False,
            )
    if not report.results:
        embed.description = 'No badges apply to this student yet.'
    if report.errors:
        embed.set_footer(text=f'{len(report.errors)} badge(s) skipped: misconfigured')
    return embed


class BadgesCog(commands.Cog):
    '''Slash commands for coaches. Engine calls hit Postgres, so they run off-loop.'''

    def __init__(self, bot: commands.Bot, engine: BadgeEngine):
        self.bot = bot
        self.engine = engine

    async def _fail(self, interaction: Interaction, error: Exception):
        command = interaction.command.name if interaction.command else '?'
        logger.info(f'{command} failed for {interaction.user.id}: {error}')
        await interaction.followup.send(f'⚠️ {error}', ephemeral=True)

    @app_commands.command(
        name='badge_progress', description='Show badge progress (read only)'
    )
    async def badge_progress(self, interaction: Interaction, student_id: str):
        await interaction.response.defer(thinking=True, ephemeral=True)
        try:
            report = await asyncio.to_thread(self.engine.get_progress, student_id)
            earned = await asyncio.to_thread(self.engine.get_earned, student_id)
        except AchievementError as e:
            await self._fail(interaction, e)
            return
        await interaction.followup.send(
            embed=progress_embed(report, {a.badge_id for a in earned}),
            ephemeral=True,
        )

    @app_commands.command(
        name='evaluate_badges', description='Evaluate and award earned badges'
    )
    async def evaluate_badges(self, interaction: Interaction, student_id: str):
        await interaction.response.defer(thinking=True, ephemeral=True)
        try:
            report = await asyncio.to_thread(self.engine.evaluate_all, student_id)
        except AchievementError as e:
            await self._fail(interaction, e)
            return
        new = len(report.newly_awarded)
        msg = f'✅ Evaluated {len(report.outcomes)} badge(s), {new} newly awarded.'
        if report.errors:
            msg += f' {len(report.errors)} misconfigured badge(s) skipped.'
        await interaction.followup.send(msg, ephemeral=True)

    @app_commands.command(name='evaluate_my_students', description='Evaluate all')
    async def evaluate_my_students(self, interaction: Interaction):
        await interaction.response.defer(thinking=True, ephemeral=True)
        coach_id = str(interaction.user.id)

        def evaluate_roster():
            return self.engine.evaluate_many(Student.ids_with_skills(coach_id))

        batch = await asyncio.to_thread(evaluate_roster)
        await interaction.followup.send(
            f'✅ {batch.students_evaluated} student(s) evaluated, '
            f'{batch.total_new_badges} new badge(s), '
            f'{len(batch.failures)} failure(s).',
            ephemeral=True,
        )

    @app_commands.command(name='award_badge', description='Manually award a badge')
    async def award_badge(
        self, interaction: Interaction, student_id: str, badge_id: str
    ):
        await interaction.response.defer(thinking=True, ephemeral=True)
        try:
            award = await asyncio.to_thread(
                self.engine.manual_award,
                student_id,
                badge_id,
                str(interaction.user.id),
            )
        except AchievementError as e:
            await self._fail(interaction, e)
            return
        await interaction.followup.send(
            f'🏆 Awarded badge {award.badge_id} (award {award.id}).', ephemeral=True
        )

    @app_commands.command(name='revoke_badge', description='Revoke an award')
    async def revoke_badge(self, interaction: Interaction, award_id: str, reason: str):
        await interaction.response.defer(thinking=True, ephemeral=True)
        try:
            await asyncio.to_thread(
                self.engine.revoke, award_id, str(interaction.user.id), reason
            )
        except AchievementError as e:
            await self._fail(interaction, e)
            return
        await interaction.followup.send(
            f'🚫 Award {award_id} revoked.', ephemeral=True
        )

    @app_commands.command(
        name='clear_award', description='Delete a revoked award record'
    )
    async def clear_award(self, interaction: Interaction, award_id: str):
        await interaction.response.defer(thinking=True, ephemeral=True)
        try:
            await asyncio.to_thread(
                self.engine.clear_award, award_id, str(interaction.user.id)
            )
        except AchievementError as e:
            await self._fail(interaction, e)
            return
        await interaction.followup.send(
            f'🧹 Award {award_id} cleared.', ephemeral=True
        )

    @app_commands.command(name='create_badge', description='Create a custom badge')
    @app_commands.describe(
        rules='e.g. `runs gte 500 2; fitness_test_passed eq 1 required`',
        students='Comma-separated student ids; empty means every student',
    )
    @app_commands.choices(level=LEVEL_CHOICES)
    async def create_badge(
        self,
        interaction: Interaction,
        name: str,
        level: app_commands.Choice[str],
        rules: str,
        sport: str = ALL_SPORTS,
        students: Optional[str] = None,
        description: str = '',
    ):
        await interaction.response.defer(thinking=True, ephemeral=True)
        try:
            draft = BadgeDraft(
                name=name,
                level=level.value,
                rules=parse_rules(rules),
                sport=sport,
                origin=CoachOrigin(str(interaction.user.id)),
                target_student_ids=split_ids(students),
                description=description,
            )
            badge = await asyncio.to_thread(self.engine.catalog.create_badge, draft)
        except (AchievementError, ValueError) as e:
            await self._fail(interaction, e)
            return
        await interaction.followup.send(
            f'✨ Created {badge_line(badge)}', ephemeral=True
        )

    @app_commands.command(name='list_badges', description='List active badges')
    async def list_badges(self, interaction: Interaction, sport: Optional[str] = None):
        await interaction.response.defer(thinking=True, ephemeral=True)
        badges = await asyncio.to_thread(
            self.engine.catalog.list_active_badges, sport
        )
        if not badges:
            await interaction.followup.send('No active badges.', ephemeral=True)
            return

        embed = discord.Embed(
            title=f'Active badges ({(sport or ALL_SPORTS).upper()})',
            color=discord.Color.blue(),
        )
        lines = [badge_line(b) for b in badges]
        for idx, block in enumerate(chunk_lines(lines), start=1):
            embed.add_field(
                name='Badges' if idx == 1 else 'Badges (cont.)',
                value=block,
                inline=False,
            )
        await interaction.followup.send(embed=embed, ephemeral=True)

    @app_commands.command(
        name='set_badge_active', description='Enable or disable a badge'
    )
    async def set_badge_active(
        self, interaction: Interaction, badge_id: str, active: bool
    ):
        await interaction.response.defer(thinking=True, ephemeral=True)
        try:
            badge = await asyncio.to_thread(
                self.engine.catalog.set_active, badge_id, active
            )
        except AchievementError as e:
            await self._fail(interaction, e)
            return
        state = 'enabled' if badge.is_active else 'disabled'
        await interaction.followup.send(
            f'{badge.icon} {badge.name} is now {state}.', ephemeral=True
        )

    @app_commands.command(name='delete_badge', description='Delete your own badge')
    async def delete_badge(self, interaction: Interaction, badge_id: str):
        await interaction.response.defer(thinking=True, ephemeral=True)
        try:
            await asyncio.to_thread(
                self.engine.catalog.delete_badge, badge_id, str(interaction.user.id)
            )
        except AchievementError as e:
            await self._fail(interaction, e)
            return
        await interaction.followup.send(
            f'🗑️ Badge {badge_id} deleted.', ephemeral=True
        )

    @app_commands.command(name='badge_history', description='Award/revoke history')
    async def badge_history(self, interaction: Interaction, student_id: str):
        await interaction.response.defer(thinking=True, ephemeral=True)
        awards = await asyncio.to_thread(self.engine.get_history, student_id)
        lines = []
        for a in awards:
            by = 'auto' if a.is_system_award else f'coach {a.awarded_by}'
            line = f'`{a.id}` badge {a.badge_id} by {by} {a.awarded_at:%Y-%m-%d}'
            if a.is_revoked:
                line += f' • revoked by {a.revoked_by}: {a.revoke_reason or "-"}'
            lines.append(line)
        await interaction.followup.send(
            '\n'.join(lines)[:1900] or 'No award history.', ephemeral=True
        )


async def setup(bot: commands.Bot):
    engine = getattr(bot, 'engine', None)
    if engine is None:
        raise RuntimeError('BadgesCog requires a bot with an `engine` attribute')
    await bot.add_cog(BadgesCog(bot, engine))
