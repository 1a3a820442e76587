"""
Create voting tables: votes, vote_configurations, vote_options,
vote_eligibility, votes_cast, vote_actions, vote_results_summaries, vote_results

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


VOTE_STATUS = ('draft', 'configured', 'open', 'closed', 'archived')
VOTE_OUTCOME = ('none', 'passed', 'failed', 'invalid')
ENTITY_TYPE = ('agenda', 'agenda_item', 'minutes', 'action_item', 'resolution')
VOTING_METHOD = ('yes_no', 'yes_no_abstain', 'multiple_choice', 'ranked')
PASSING_RULE = ('simple_majority', 'two_thirds', 'three_quarters', 'unanimous')
OPTION_KIND = ('affirmative', 'negative', 'abstain', 'choice')
ACTION_TYPE = (
    'created', 'configured', 'opened', 'vote_cast', 'vote_changed', 'closed',
    'results_generated', 'reopened', 'archived', 'deleted',
)


def upgrade() -> None:
    """Create voting tables."""

    # Configuration store
    op.create_table(
        'votes',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('entity_type', sa.Enum(*ENTITY_TYPE, name='voteentitytype'), nullable=True),
        sa.Column('entity_id', sa.String(64), nullable=True),
        sa.Column('meeting_id', sa.String(64), nullable=True, index=True),
        sa.Column('board_id', sa.String(64), nullable=True, index=True),
        sa.Column('title', sa.String(300), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('status', sa.Enum(*VOTE_STATUS, name='votestatus'), nullable=False, index=True),
        sa.Column('outcome', sa.Enum(*VOTE_OUTCOME, name='voteoutcome'), nullable=False),
        sa.Column('created_by_id', sa.String(64), nullable=False),
        sa.Column('created_by_name', sa.String(200), nullable=True),
        sa.Column('opened_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_votes_entity', 'votes', ['entity_type', 'entity_id'])

    op.create_table(
        'vote_configurations',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('vote_id', sa.String(15), sa.ForeignKey('votes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('voting_method', sa.Enum(*VOTING_METHOD, name='votingmethod'), nullable=False),
        sa.Column('quorum_required', sa.Boolean, nullable=True),
        sa.Column('quorum_percentage', sa.Float, nullable=True),
        sa.Column('passing_rule', sa.Enum(*PASSING_RULE, name='passingrule'), nullable=False),
        sa.Column('pass_threshold_percentage', sa.Float, nullable=True),
        sa.Column('anonymous', sa.Boolean, nullable=True),
        sa.Column('allow_abstain', sa.Boolean, nullable=True),
        sa.Column('allow_change_vote', sa.Boolean, nullable=True),
        sa.Column('time_limit', sa.Integer, nullable=True),
        sa.Column('auto_close_when_all_voted', sa.Boolean, nullable=True),
        sa.Column('created', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('vote_id', name='uq_vote_configurations_vote'),
    )

    op.create_table(
        'vote_options',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('vote_id', sa.String(15), sa.ForeignKey('votes.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('label', sa.String(300), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('display_order', sa.Integer, nullable=False, server_default='0'),
        sa.Column('kind', sa.Enum(*OPTION_KIND, name='optionkind'), nullable=False),
        sa.Column('created', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # Ledger (insert-only)
    op.create_table(
        'vote_eligibility',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('vote_id', sa.String(15), sa.ForeignKey('votes.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('user_name', sa.String(200), nullable=False),
        sa.Column('user_role', sa.String(100), nullable=True),
        sa.Column('weight', sa.Float, nullable=False, server_default='1.0'),
        sa.Column('eligible', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('vote_id', 'user_id', name='uq_vote_eligibility_vote_user'),
        sa.CheckConstraint('weight >= 0', name='ck_vote_eligibility_weight_non_negative'),
    )

    op.create_table(
        'votes_cast',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('vote_id', sa.String(15), sa.ForeignKey('votes.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('option_id', sa.String(15), sa.ForeignKey('vote_options.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('user_name', sa.String(200), nullable=True),
        sa.Column('weight_applied', sa.Float, nullable=False),
        sa.Column('ballot_sequence', sa.Integer, nullable=False, server_default='1'),
        sa.Column('cast_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.Text, nullable=True),
        sa.UniqueConstraint('vote_id', 'user_id', 'ballot_sequence', name='uq_votes_cast_vote_user_sequence'),
    )
    op.create_index('ix_votes_cast_vote_user_cast_at', 'votes_cast', ['vote_id', 'user_id', 'cast_at'])

    # No foreign key on vote_id; the log outlives deleted drafts
    op.create_table(
        'vote_actions',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('vote_id', sa.String(15), nullable=False, index=True),
        sa.Column('sequence', sa.Integer, nullable=False),
        sa.Column('action_type', sa.Enum(*ACTION_TYPE, name='voteactiontype'), nullable=False),
        sa.Column('performed_by_id', sa.String(64), nullable=False),
        sa.Column('performed_by_name', sa.String(200), nullable=True),
        sa.Column('metadata', sa.JSON, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('vote_id', 'sequence', name='uq_vote_actions_vote_sequence'),
    )

    # Results cache
    op.create_table(
        'vote_results_summaries',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('vote_id', sa.String(15), sa.ForeignKey('votes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('total_eligible', sa.Integer, nullable=False, server_default='0'),
        sa.Column('total_voted', sa.Integer, nullable=False, server_default='0'),
        sa.Column('total_weight', sa.Float, nullable=False, server_default='0'),
        sa.Column('quorum_required', sa.Integer, nullable=False, server_default='0'),
        sa.Column('quorum_met', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('threshold_percentage', sa.Float, nullable=False, server_default='0'),
        sa.Column('outcome', postgresql.ENUM(*VOTE_OUTCOME, name='voteoutcome', create_type=False), nullable=False),
        sa.Column('winning_option_id', sa.String(15), nullable=True),
        sa.Column('computed_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('vote_id', name='uq_vote_results_summaries_vote'),
    )

    op.create_table(
        'vote_results',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('vote_id', sa.String(15), sa.ForeignKey('votes.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('option_id', sa.String(15), nullable=False),
        sa.Column('option_label', sa.String(300), nullable=False),
        sa.Column('display_order', sa.Integer, nullable=False, server_default='0'),
        sa.Column('total_weight', sa.Float, nullable=False, server_default='0'),
        sa.Column('vote_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('percentage', sa.Float, nullable=False, server_default='0'),
        sa.Column('is_winner', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.UniqueConstraint('vote_id', 'option_id', name='uq_vote_results_vote_option'),
    )

    # Ledger rows may only be inserted
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("""
            CREATE OR REPLACE FUNCTION reject_ledger_change() RETURNS trigger AS $$
            BEGIN
                RAISE EXCEPTION '% rows are append-only', TG_TABLE_NAME;
            END;
            $$ LANGUAGE plpgsql
        """)
        for table in ('vote_eligibility', 'votes_cast', 'vote_actions'):
            op.execute(
                f"CREATE TRIGGER {table}_append_only BEFORE UPDATE OR DELETE ON {table} "
                f"FOR EACH ROW EXECUTE FUNCTION reject_ledger_change()"
            )


def downgrade() -> None:
    """Drop voting tables."""
    if op.get_bind().dialect.name == 'postgresql':
        for table in ('vote_eligibility', 'votes_cast', 'vote_actions'):
            op.execute(f"DROP TRIGGER IF EXISTS {table}_append_only ON {table}")
        op.execute("DROP FUNCTION IF EXISTS reject_ledger_change()")

    op.drop_table('vote_results')
    op.drop_table('vote_results_summaries')
    op.drop_table('vote_actions')
    op.drop_index('ix_votes_cast_vote_user_cast_at', table_name='votes_cast')
    op.drop_table('votes_cast')
    op.drop_table('vote_eligibility')
    op.drop_table('vote_options')
    op.drop_table('vote_configurations')
    op.drop_index('ix_votes_entity', table_name='votes')
    op.drop_table('votes')

    # Drop enum types
    for enum_name in ('voteactiontype', 'optionkind', 'passingrule', 'votingmethod', 'voteoutcome', 'voteentitytype', 'votestatus'):
        op.execute(f'DROP TYPE IF EXISTS {enum_name}')
