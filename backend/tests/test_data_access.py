"""
Tests for data_access layer.

These tests mock the database connection to verify the logic
without requiring an actual database.
"""

import pytest
import sys
import os
from unittest.mock import patch, MagicMock
from datetime import datetime, timezone

import psycopg2
from psycopg2.extensions import TransactionRollbackError

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from domain.errors import (  # noqa: E402
    FatalStoreError,
    TransientStoreConflict,
    UnsupportedTransactionMode,
)


# All tests mock at the repository's base level (database_postgres.get_connection)
# since the wrapper functions delegate to repositories


def mock_connection(mock_get_conn, fetchall=None, fetchone=None):
    mock_cursor = MagicMock()
    if fetchall is not None:
        mock_cursor.fetchall.side_effect = fetchall
    mock_cursor.fetchone.return_value = fetchone
    mock_conn = MagicMock()
    mock_conn.cursor.return_value = mock_cursor
    mock_get_conn.return_value = mock_conn
    return mock_conn, mock_cursor


def rating_row(identity_id, game_type='wizard', rating=1040, history=None):
    return {
        'identity_id': identity_id,
        'game_type': game_type,
        'rating': rating,
        'peak': rating,
        'floor': 1000,
        'games_played': 3,
        'streak': 2,
        'last_updated': datetime(2024, 3, 1, tzinfo=timezone.utc),
        'history': history or [],
    }


class TestConnectionConfig:
    """Tests for database_postgres configuration helpers."""

    def clear_env(self, monkeypatch):
        for name in ('DATABASE_URL', 'PGHOST', 'PGPORT', 'PGUSER', 'PGPASSWORD', 'PGDATABASE', 'PG_CONNECT_TIMEOUT'):
            monkeypatch.delenv(name, raising=False)

    def test_database_url_wins(self, monkeypatch):
        from database_postgres import get_connection_string

        self.clear_env(monkeypatch)
        monkeypatch.setenv('DATABASE_URL', 'postgresql://u:p@db:5432/elo')
        monkeypatch.setenv('PGHOST', 'ignored')

        assert get_connection_string() == 'postgresql://u:p@db:5432/elo'

    def test_builds_from_pg_variables(self, monkeypatch):
        from database_postgres import get_connection_string

        self.clear_env(monkeypatch)
        monkeypatch.setenv('PGHOST', 'db')
        monkeypatch.setenv('PGUSER', 'elo')
        monkeypatch.setenv('PGPASSWORD', 'secret')
        monkeypatch.setenv('PGDATABASE', 'ratings')

        assert get_connection_string() == 'postgresql://elo:secret@db:5432/ratings'

    def test_names_missing_variables(self, monkeypatch):
        from database_postgres import get_connection_string

        self.clear_env(monkeypatch)
        monkeypatch.setenv('PGHOST', 'db')

        with pytest.raises(ValueError, match='PGUSER, PGPASSWORD, PGDATABASE'):
            get_connection_string()

    @pytest.mark.parametrize("raw,expected", [(None, 10), ("30", 30), ("0", 1), ("soon", 10)])
    def test_connect_timeout(self, monkeypatch, raw, expected):
        from database_postgres import get_connect_timeout

        self.clear_env(monkeypatch)
        if raw is not None:
            monkeypatch.setenv('PG_CONNECT_TIMEOUT', raw)

        assert get_connect_timeout() == expected


class TestStoreErrorTranslation:
    """Tests for translate_store_error()."""

    def test_serialization_failure_is_transient(self):
        from data_access.repositories import translate_store_error

        error = translate_store_error(TransactionRollbackError("could not serialize access"))
        assert isinstance(error, TransientStoreConflict)

    def test_not_supported_means_no_transactions(self):
        from data_access.repositories import translate_store_error

        error = translate_store_error(psycopg2.NotSupportedError("not supported"))
        assert isinstance(error, UnsupportedTransactionMode)

    def test_anything_else_is_fatal(self):
        from data_access.repositories import translate_store_error

        error = translate_store_error(psycopg2.OperationalError("server closed the connection"))
        assert isinstance(error, FatalStoreError)

    def test_rating_errors_pass_through(self):
        from data_access.repositories import translate_store_error

        original = TransientStoreConflict("already translated")
        assert translate_store_error(original) is original


class TestBaseRepository:
    """Tests for BaseRepository connection handling."""

    @patch('data_access.repositories.base.get_connection')
    def test_transaction_commits_on_success(self, mock_get_conn):
        from data_access.repositories import BaseRepository
        from psycopg2.extensions import ISOLATION_LEVEL_SERIALIZABLE

        mock_conn, mock_cursor = mock_connection(mock_get_conn)

        with BaseRepository().transaction() as cursor:
            cursor.execute("SELECT 1")

        mock_get_conn.assert_called_once_with(isolation_level=ISOLATION_LEVEL_SERIALIZABLE)
        mock_conn.commit.assert_called_once()
        mock_conn.rollback.assert_not_called()
        mock_cursor.close.assert_called_once()
        mock_conn.close.assert_called_once()

    @patch('data_access.repositories.base.get_connection')
    def test_transaction_rolls_back_and_translates(self, mock_get_conn):
        from data_access.repositories import BaseRepository

        mock_conn, mock_cursor = mock_connection(mock_get_conn)
        mock_cursor.execute.side_effect = TransactionRollbackError("deadlock detected")

        with pytest.raises(TransientStoreConflict):
            with BaseRepository().transaction() as cursor:
                cursor.execute("UPDATE identity_ratings SET rating = 1")

        mock_conn.commit.assert_not_called()
        mock_conn.rollback.assert_called_once()
        mock_conn.close.assert_called_once()

    @patch('data_access.repositories.base.get_connection')
    def test_read_connection_never_commits(self, mock_get_conn):
        from data_access.repositories import BaseRepository

        mock_conn, _ = mock_connection(mock_get_conn)

        with BaseRepository().read_connection() as (conn, cursor):
            cursor.execute("SELECT 1")

        mock_conn.commit.assert_not_called()
        mock_conn.close.assert_called_once()

    @patch('data_access.repositories.base.get_connection')
    def test_missing_configuration_is_fatal(self, mock_get_conn):
        from data_access.repositories import BaseRepository

        mock_get_conn.side_effect = ValueError("Database connection not configured.")

        with pytest.raises(FatalStoreError):
            with BaseRepository().connection():
                pass


class TestIdentityRepository:
    """Tests for IdentityRepository."""

    @patch('data_access.repositories.base.get_connection')
    def test_fetch_by_ids_builds_rating_books(self, mock_get_conn):
        from data_access.repositories import IdentityRepository

        history = [{
            'rating': 1040, 'change': 20, 'game_id': 'g2', 'opponents': ['Bob'],
            'placement': 1, 'date': '2024-03-01T12:00:00+00:00',
        }]
        mock_conn, mock_cursor = mock_connection(mock_get_conn, fetchall=[
            [
                {'id': 'alice', 'display_name': 'Alice', 'user_id': 'u1', 'kind': 'user',
                 'merged_into': None, 'is_deleted': False},
                {'id': 'bob', 'display_name': 'Bob', 'user_id': None, 'kind': None,
                 'merged_into': None, 'is_deleted': False},
            ],
            [rating_row('alice', history=history), rating_row('alice', game_type='flip-7', rating=980)],
        ])

        identities = IdentityRepository().fetch_by_ids(['alice', 'bob', 'alice'])

        assert [i.id for i in identities] == ['alice', 'bob']
        alice, bob = identities
        assert alice.kind == 'user'
        assert sorted(alice.ratings.game_types()) == ['flip-7', 'wizard']
        wizard = alice.ratings.get('wizard')
        assert wizard.rating == 1040
        assert wizard.history[0].game_id == 'g2'
        assert wizard.history[0].date == datetime(2024, 3, 1, 12, tzinfo=timezone.utc)
        assert bob.kind == 'guest'
        assert len(bob.ratings) == 0

        # Duplicate ids are only queried once
        first_query_params = mock_cursor.execute.call_args_list[0][0][1]
        assert first_query_params == (['alice', 'bob'],)
        mock_conn.close.assert_called_once()

    @patch('data_access.repositories.base.get_connection')
    def test_fetch_by_ids_empty_skips_database(self, mock_get_conn):
        from data_access.repositories import IdentityRepository

        assert IdentityRepository().fetch_by_ids([]) == []
        mock_get_conn.assert_not_called()

    def test_fetch_by_ids_uses_open_transaction_cursor(self):
        from data_access.repositories import IdentityRepository

        cursor = MagicMock()
        cursor.fetchall.side_effect = [[]]

        with patch('data_access.repositories.base.get_connection') as mock_get_conn:
            assert IdentityRepository().fetch_by_ids(['alice'], cursor=cursor) == []
            mock_get_conn.assert_not_called()

        cursor.execute.assert_called_once()

    def test_persist_upserts_single_game_type(self):
        from data_access.repositories import IdentityRepository
        from domain.ratings import Identity, RatingBook, RatingRecord

        identity = Identity(id='alice', display_name='Alice', ratings=RatingBook({
            'wizard': RatingRecord(rating=1020, games_played=1),
            'flip-7': RatingRecord(rating=990, games_played=1),
        }))
        cursor = MagicMock()

        IdentityRepository().persist(identity, game_type='Wizard', cursor=cursor)

        cursor.execute.assert_called_once()
        query, params = cursor.execute.call_args[0]
        assert 'ON CONFLICT (identity_id, game_type)' in query
        assert params[0] == 'alice'
        assert params[1] == 'wizard'
        assert params[2] == 1020

    @patch('data_access.repositories.base.get_connection')
    def test_persist_without_cursor_commits(self, mock_get_conn):
        from data_access.repositories import IdentityRepository
        from domain.ratings import Identity, RatingBook, RatingRecord

        mock_conn, mock_cursor = mock_connection(mock_get_conn)
        identity = Identity(id='alice', display_name='Alice', ratings=RatingBook({
            'wizard': RatingRecord(), 'flip-7': RatingRecord(),
        }))

        IdentityRepository().persist(identity)

        assert mock_cursor.execute.call_count == 2
        mock_conn.commit.assert_called_once()

    @patch('data_access.repositories.base.get_connection')
    def test_clear_ratings_for_one_game_type(self, mock_get_conn):
        from data_access.repositories import IdentityRepository

        mock_conn, mock_cursor = mock_connection(mock_get_conn)
        mock_cursor.rowcount = 7

        removed = IdentityRepository().clear_ratings('Flip 7')

        assert removed == 7
        query, params = mock_cursor.execute.call_args[0]
        assert 'WHERE game_type = %s' in query
        assert params == ('flip-7',)
        mock_conn.commit.assert_called_once()

    @patch('data_access.repositories.base.get_connection')
    def test_clear_all_ratings(self, mock_get_conn):
        from data_access.repositories import IdentityRepository

        mock_conn, mock_cursor = mock_connection(mock_get_conn)
        mock_cursor.rowcount = 12

        assert IdentityRepository().clear_ratings() == 12
        assert mock_cursor.execute.call_args[0][0] == "DELETE FROM identity_ratings"

    @patch('data_access.repositories.base.get_connection')
    def test_supports_transactions_probe(self, mock_get_conn):
        from data_access.repositories import IdentityRepository

        mock_connection(mock_get_conn)
        assert IdentityRepository().supports_transactions() is True

        _, mock_cursor = mock_connection(mock_get_conn)
        mock_cursor.execute.side_effect = psycopg2.NotSupportedError("no serializable")
        assert IdentityRepository().supports_transactions() is False


class TestGameRepository:
    """Tests for GameRepository."""

    @patch('data_access.repositories.base.get_connection')
    def test_finished_games_maps_families(self, mock_get_conn):
        from data_access.repositories import GameRepository

        mock_connection(mock_get_conn, fetchall=[
            [
                {'id': 'w1', 'family': 'wizard', 'game_type_name': 'Ignored', 'finished': True,
                 'low_is_better': False, 'occurred_at': None, 'created_at': None},
                {'id': 't1', 'family': 'table', 'game_type_name': 'Flip 7', 'finished': True,
                 'low_is_better': False, 'occurred_at': None, 'created_at': None},
                {'id': 't2', 'family': 'table', 'game_type_name': None, 'finished': True,
                 'low_is_better': False, 'occurred_at': None, 'created_at': None},
            ],
            [
                {'game_id': 'w1', 'player_slot': 0, 'identity_id': 'alice', 'display_name': 'Alice', 'score': 120},
                {'game_id': 'w1', 'player_slot': 1, 'identity_id': None, 'display_name': 'Guest', 'score': 80},
                {'game_id': 't1', 'player_slot': 0, 'identity_id': 'bob', 'display_name': 'Bob', 'score': 5},
            ],
        ])

        games = GameRepository().finished_games()

        assert [g.game_type for g in games] == ['wizard', 'flip-7', 'table']
        wizard = games[0]
        assert [p.display_name for p in wizard.participants] == ['Alice', 'Guest']
        assert wizard.participants[1].identity_id is None
        assert wizard.participants[0].score == 120.0
        assert games[2].participants == []

    @patch('data_access.repositories.base.get_connection')
    def test_finished_games_filters_by_type(self, mock_get_conn):
        from data_access.repositories import GameRepository

        mock_connection(mock_get_conn, fetchall=[
            [
                {'id': 'w1', 'family': 'wizard', 'game_type_name': None, 'finished': True,
                 'low_is_better': False, 'occurred_at': None, 'created_at': None},
                {'id': 't1', 'family': 'table', 'game_type_name': 'flip-7', 'finished': True,
                 'low_is_better': False, 'occurred_at': None, 'created_at': None},
            ],
            [],
        ])

        games = GameRepository().finished_games(game_type='Flip 7')

        assert [g.game_id for g in games] == ['t1']

    @patch('data_access.repositories.base.get_connection')
    def test_lower_is_better_scores_are_inverted(self, mock_get_conn):
        from data_access.repositories import GameRepository

        mock_connection(
            mock_get_conn,
            fetchone={'id': 'h1', 'family': 'table', 'game_type_name': 'Hearts', 'finished': True,
                      'low_is_better': True, 'occurred_at': None, 'created_at': None},
            fetchall=[[
                {'game_id': 'h1', 'player_slot': 0, 'identity_id': 'alice', 'display_name': 'Alice', 'score': 12},
                {'game_id': 'h1', 'player_slot': 1, 'identity_id': 'bob', 'display_name': 'Bob', 'score': 40},
            ]],
        )

        game = GameRepository().get_game('h1')

        scores = {p.identity_id: p.score for p in game.participants}
        assert scores['alice'] > scores['bob']

    @patch('data_access.repositories.base.get_connection')
    def test_get_game_not_found(self, mock_get_conn):
        from data_access.repositories import GameRepository

        mock_connection(mock_get_conn, fetchone=None)

        assert GameRepository().get_game('missing') is None


class TestRatingUpdates:
    """Tests for rating_updates.update_ratings_for_game()."""

    def test_applies_loaded_game(self, monkeypatch):
        from data_access import rating_updates
        from services import rating_applier as applier_module
        from services.elo_engine import RatingChange
        from services.rating_applier import ParticipantUpdate
        from domain.ratings import RatingRecord

        game = MagicMock(game_type='wizard')
        repo = MagicMock()
        repo.get_game.return_value = game
        applier = MagicMock()
        change = RatingChange(
            identity_id='alice', display_name='Alice', placement=1, score=60,
            old_rating=1000, new_rating=1022, delta=22, won=True, opponents=['Bob'],
        )
        applier.apply_outcome_safely.return_value = [
            ParticipantUpdate(identity_id='alice', game_type='wizard', change=change, record=RatingRecord()),
        ]
        monkeypatch.setattr(rating_updates, '_game_repo', repo)
        monkeypatch.setattr(applier_module, 'rating_applier', applier)

        result = rating_updates.update_ratings_for_game('g1')

        applier.apply_outcome_safely.assert_called_once_with(game, 'wizard')
        assert result[0]['game_type'] == 'wizard'
        assert result[0]['identity_id'] == 'alice'
        assert result[0]['delta'] == 22

    def test_missing_game_is_a_noop(self, monkeypatch):
        from data_access import rating_updates

        repo = MagicMock()
        repo.get_game.return_value = None
        monkeypatch.setattr(rating_updates, '_game_repo', repo)

        assert rating_updates.update_ratings_for_game('nope') == []

    def test_store_failure_never_raises(self, monkeypatch):
        from data_access import rating_updates

        repo = MagicMock()
        repo.get_game.side_effect = FatalStoreError("connection refused")
        monkeypatch.setattr(rating_updates, '_game_repo', repo)

        assert rating_updates.update_ratings_for_game('g1') == []

    def test_unexpected_load_error_never_raises(self, monkeypatch):
        from data_access import rating_updates

        repo = MagicMock()
        repo.get_game.side_effect = ValueError("Invalid isoformat string: '2024-13-01'")
        monkeypatch.setattr(rating_updates, '_game_repo', repo)

        assert rating_updates.update_ratings_for_game('g1') == []


class TestRatingRecordFromDict:
    """Tests for RatingRecord.from_dict()."""

    def test_stored_zero_values_are_kept(self):
        from domain.ratings import RatingRecord

        record = RatingRecord.from_dict({'rating': 0, 'peak': 0, 'floor': 0, 'games_played': 4, 'streak': -2})

        assert record.rating == 0
        assert record.peak == 0
        assert record.floor == 0
        assert record.games_played == 4
        assert record.streak == -2

    def test_missing_values_use_defaults(self):
        from domain.constants import DEFAULT_RATING
        from domain.ratings import RatingRecord

        record = RatingRecord.from_dict({'rating': None})

        assert record.rating == DEFAULT_RATING
        assert record.peak == DEFAULT_RATING
        assert record.floor == DEFAULT_RATING
        assert record.games_played == 0
        assert record.history == []


class TestRatingQueries:
    """Tests for rating_queries wrappers."""

    def test_get_leaderboard_returns_dict(self, monkeypatch):
        from conftest import FakeIdentityStore, make_identity
        from data_access import rating_queries
        from domain.ratings import RatingRecord
        from services import leaderboard
        from services.leaderboard import LeaderboardService

        alice = make_identity('alice')
        alice.ratings.set('wizard', RatingRecord(rating=1100, games_played=6))
        monkeypatch.setattr(leaderboard, 'leaderboard_service', LeaderboardService(FakeIdentityStore([alice])))

        result = rating_queries.get_leaderboard('Wizard')

        assert result['game_type'] == 'wizard'
        assert result['rankings'][0]['identity_id'] == 'alice'
        assert result['pagination']['total'] == 1

    def test_get_identity_ratings_unknown(self, monkeypatch):
        from conftest import FakeIdentityStore
        from data_access import rating_queries
        from services import leaderboard
        from services.leaderboard import LeaderboardService

        monkeypatch.setattr(leaderboard, 'leaderboard_service', LeaderboardService(FakeIdentityStore()))

        assert rating_queries.get_identity_ratings('nobody') is None
        assert rating_queries.get_history('nobody', 'wizard') == []
