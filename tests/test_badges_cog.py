import asyncio
import threading
from unittest.mock import AsyncMock, MagicMock

import pytest
from discord import app_commands

from athlete_badges.achievements.catalog import BadgeCatalog
from athlete_badges.achievements.definitions import CoachOrigin, ScoreResult
from athlete_badges.achievements.engine import (
    BadgeEngine,
    BadgeFailure,
    ProgressReport,
)
from athlete_badges.cogs.badges_cog import (
    BadgesCog,
    chunk_lines,
    parse_rules,
    progress_bar,
    progress_embed,
    split_ids,
)
from tests.conftest import FakeBadgeWriter, make_badge, make_rule


def make_interaction(user_id='coach1'):
    interaction = MagicMock()
    interaction.user.id = user_id
    interaction.command = None
    interaction.response.defer = AsyncMock()
    interaction.followup.send = AsyncMock()
    return interaction


def sent(interaction):
    args, kwargs = interaction.followup.send.call_args
    return (args[0] if args else None), kwargs


@pytest.fixture()
def cog(metrics, badge_source, ledger):
    catalog = BadgeCatalog(badge_source, FakeBadgeWriter(badge_source))
    return BadgesCog(MagicMock(), BadgeEngine(metrics, catalog, ledger))


def test_progress_bar():
    assert progress_bar(0) == '░' * 10
    assert progress_bar(67) == '█' * 7 + '░' * 3
    assert progress_bar(100) == '█' * 10


def test_chunk_lines_splits_long_lists():
    lines = ['x' * 40] * 30
    chunks = chunk_lines(lines, max_len=200)
    assert all(len(c) <= 200 for c in chunks)
    assert sum(c.count('\n') + 1 for c in chunks) == 30


def test_progress_embed_separates_earned_and_open():
    report = ProgressReport(
        student_id='s1',
        results=[ScoreResult('b1', 100, True), ScoreResult('b2', 40, False)],
        errors=[BadgeFailure('b3', 'config_invalid')],
        badges={
            'b1': make_badge('b1', make_rule('runs'), icon='🏏'),
            'b2': make_badge('b2', make_rule('runs')),
        },
    )
    embed = progress_embed(report, earned_ids={'b1'})

    fields = {f.name: f.value for f in embed.fields}
    assert 'Badge b1' in fields['Earned']
    assert '40%' in fields['In progress']
    assert '1 badge(s) skipped' in embed.footer.text


def test_progress_embed_without_badges():
    embed = progress_embed(ProgressReport(student_id='s1'), earned_ids=set())
    assert embed.description == 'No badges apply to this student yet.'


def test_parse_rules():
    rules = parse_rules('runs gte 500 2; fitness_test_passed EQ 1 required;')
    assert [(r.field_name, r.operator, r.threshold) for r in rules] == [
        ('runs', 'gte', 500),
        ('fitness_test_passed', 'eq', 1),
    ]
    assert [r.weight for r in rules] == [2.0, 1.0]
    assert [r.is_required for r in rules] == [False, True]
    assert parse_rules('strike_rate gt 120.5')[0].threshold == 120.5


@pytest.mark.parametrize('text', ['', 'runs gte', 'runs gte many', 'a b 1 2 3'])
def test_parse_rules_rejects_bad_input(text):
    with pytest.raises(ValueError):
        parse_rules(text)


def test_split_ids():
    assert split_ids(' s1, s2 ,,') == ['s1', 's2']
    assert split_ids(None) == []


def test_create_badge_command_makes_coach_badge(cog, badge_source, metrics):
    interaction = make_interaction('coach1')
    asyncio.run(
        cog.create_badge.callback(
            cog,
            interaction,
            name='Run Machine',
            level=app_commands.Choice(name='Silver', value='SILVER'),
            rules='runs gte 500; fitness_test_passed eq 1 required',
            sport='cricket',
            students='s1',
        )
    )

    message, _ = sent(interaction)
    assert message.startswith('✨ Created')
    (badge,) = badge_source.badges.values()
    assert badge.origin == CoachOrigin('coach1')
    assert badge.category == 'Custom'
    assert badge.sport == 'CRICKET'
    assert badge.target_student_ids == frozenset({'s1'})
    assert len(badge.rules) == 2

    metrics.add('s1', runs=600, fitness_test_passed=True)
    assert cog.engine.evaluate_all('s1').newly_awarded == [badge.id]


def test_create_badge_command_reports_bad_rules(cog, badge_source):
    interaction = make_interaction('coach1')
    asyncio.run(
        cog.create_badge.callback(
            cog,
            interaction,
            name='Broken',
            level=app_commands.Choice(name='Bronze', value='BRONZE'),
            rules='runs between 5',
        )
    )
    message, _ = sent(interaction)
    assert message.startswith('⚠️')
    assert 'unknown operator' in message
    assert badge_source.badges == {}


def test_list_badges_command(cog, badge_source):
    badge_source.badges.update(
        {
            'b1': make_badge('b1', make_rule('runs'), name='Opener'),
            'b2': make_badge('b2', make_rule('aces'), name='Ace', sport='TENNIS'),
        }
    )
    interaction = make_interaction()
    asyncio.run(cog.list_badges.callback(cog, interaction, sport='cricket'))

    _, kwargs = sent(interaction)
    text = '\n'.join(f.value for f in kwargs['embed'].fields)
    assert 'Opener' in text
    assert 'Ace' not in text


def test_list_badges_command_when_empty(cog):
    interaction = make_interaction()
    asyncio.run(cog.list_badges.callback(cog, interaction, sport=None))
    assert sent(interaction)[0] == 'No active badges.'


def test_commands_run_engine_off_the_event_loop():
    loop_thread = threading.get_ident()
    calls = []

    def get_progress(student_id):
        calls.append(threading.get_ident())
        return ProgressReport(student_id=student_id)

    def get_earned(student_id):
        calls.append(threading.get_ident())
        return []

    engine = MagicMock()
    engine.get_progress.side_effect = get_progress
    engine.get_earned.side_effect = get_earned
    cog = BadgesCog(MagicMock(), engine)

    interaction = make_interaction()
    asyncio.run(cog.badge_progress.callback(cog, interaction, 's1'))

    assert len(calls) == 2
    assert loop_thread not in calls
    assert 'embed' in sent(interaction)[1]


def test_command_errors_become_replies(cog):
    interaction = make_interaction()
    asyncio.run(cog.evaluate_badges.callback(cog, interaction, 'ghost'))
    assert sent(interaction)[0] == '⚠️ student ghost not found'
