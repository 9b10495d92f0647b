"""Ranking: eligibility, deterministic ordering, user rank."""
from green_rewards.types import ActionCategory, UserRole


class TestEligibility:

    def test_only_active_warga_with_points(self, ranking, make_user):
        warga = make_user(total_points=50)
        make_user(total_points=500, role="DLH")
        make_user(total_points=500, role="ADMIN")
        make_user(total_points=500, is_active=False)
        make_user(total_points=0)

        entries = ranking.top(10)
        assert [e.user_id for e in entries] == [warga]
        assert entries[0].role == UserRole.WARGA

    def test_empty(self, ranking, make_user):
        make_user(total_points=0)
        assert ranking.top(3) == []
        assert ranking.page(1, 10).meta.total == 0


class TestOrdering:

    def test_points_desc(self, ranking, make_user):
        low = make_user(total_points=10)
        high = make_user(total_points=100)
        mid = make_user(total_points=50)
        assert [e.user_id for e in ranking.top(3)] == [high, mid, low]
        assert [e.rank for e in ranking.top(3)] == [1, 2, 3]

    def test_ties_broken_by_created_at_then_id(self, ranking, make_user):
        late = make_user(user_id="a-late", total_points=40, created_offset=30)
        early = make_user(user_id="z-early", total_points=40, created_offset=10)
        same_time_b = make_user(user_id="b-same", total_points=40, created_offset=20)
        same_time_a = make_user(user_id="a-same", total_points=40, created_offset=20)

        assert [e.user_id for e in ranking.top(4)] == [early, same_time_a, same_time_b, late]

    def test_total_actions_counted(self, ranking, ledger, make_user, fakes):
        user_id = make_user()
        ledger.submit(user_id, ActionCategory.GREEN_HOME, "PLANT_TREE", "m1", fakes.analysis(90))
        ledger.submit(user_id, ActionCategory.GREEN_HOME, "PLANT_TREE", "m2", fakes.analysis(10))
        entry = ranking.top(1)[0]
        assert entry.total_points == 60
        assert entry.total_actions == 2


class TestPage:

    def test_page_ranks_continue_across_pages(self, ranking, make_user):
        for points in (100, 90, 80, 70, 60):
            make_user(total_points=points)

        page = ranking.page(page=2, limit=2)
        assert [e.rank for e in page.data] == [3, 4]
        assert [e.total_points for e in page.data] == [80, 70]
        assert page.meta.total == 5
        assert page.meta.total_pages == 3


class TestUserRank:

    def test_rank_and_percentile(self, ranking, make_user):
        ids = [make_user(total_points=points) for points in (100, 90, 80, 70)]

        first = ranking.user_rank(ids[0])
        assert first.rank == 1
        assert first.total_points == 100
        assert first.percentile == 75

        # (4 - 2) / 4 * 100 = 50
        assert ranking.user_rank(ids[1]).percentile == 50
        assert ranking.user_rank(ids[3]).percentile == 0

    def test_percentile_rounds_half_up(self, ranking, make_user):
        ids = [make_user(total_points=points) for points in range(80, 0, -10)]
        # (8 - 3) / 8 * 100 = 62.5
        assert ranking.user_rank(ids[2]).percentile == 63

    def test_rank_matches_top_order_on_ties(self, ranking, make_user):
        make_user(user_id="u-b", total_points=40, created_offset=5)
        make_user(user_id="u-a", total_points=40, created_offset=5)
        make_user(user_id="u-c", total_points=40, created_offset=1)

        for entry in ranking.top(3):
            assert ranking.user_rank(entry.user_id).rank == entry.rank

    def test_unranked_user(self, ranking, make_user):
        make_user(total_points=10)
        zero = make_user(total_points=0)
        rank = ranking.user_rank(zero)
        assert (rank.rank, rank.total_points, rank.total_actions, rank.percentile) == (0, 0, 0, 0)
        assert ranking.user_rank("missing").rank == 0
