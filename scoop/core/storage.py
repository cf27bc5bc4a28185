"""
SQLite persistence for campaigns, posts, ratings and articles.

The database is the only synchronization point between the web process,
the CLI and scheduled workers: uniqueness constraints make ingestion and
scheduled jobs idempotent.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from scoop.core.errors import JobAlreadyClaimed, NotFoundError
from scoop.models.content import (
    Article,
    Campaign,
    CampaignMetrics,
    Feed,
    ManualArticle,
    Post,
    PostRating,
    UserActivity,
)
from scoop.models.status import CampaignStatus

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS feeds (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    url TEXT UNIQUE NOT NULL,
    name TEXT NOT NULL,
    active INTEGER NOT NULL DEFAULT 1,
    last_processed TIMESTAMP,
    processing_errors INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS campaigns (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    date TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'draft',
    subject_line TEXT,
    review_sent_at TIMESTAMP,
    final_sent_at TIMESTAMP,
    review_campaign_id TEXT,
    final_campaign_id TEXT,
    last_action TEXT,
    last_action_at TIMESTAMP,
    last_action_by TEXT,
    metrics TEXT,
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS job_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    campaign_date TEXT NOT NULL,
    job_type TEXT NOT NULL,
    campaign_id INTEGER,
    status TEXT NOT NULL DEFAULT 'running',
    details TEXT,
    started_at TIMESTAMP NOT NULL,
    finished_at TIMESTAMP,
    UNIQUE (campaign_date, job_type)
);

CREATE TABLE IF NOT EXISTS posts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    feed_id INTEGER REFERENCES feeds(id) ON DELETE SET NULL,
    campaign_id INTEGER REFERENCES campaigns(id) ON DELETE CASCADE,
    external_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL DEFAULT '',
    author TEXT NOT NULL DEFAULT '',
    publication_date TIMESTAMP,
    source_url TEXT NOT NULL DEFAULT '',
    image_url TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMP NOT NULL,
    UNIQUE (feed_id, external_id)
);

CREATE TABLE IF NOT EXISTS post_ratings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    post_id INTEGER UNIQUE NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
    interest_level INTEGER NOT NULL,
    local_relevance INTEGER NOT NULL,
    community_impact INTEGER NOT NULL,
    total_score INTEGER NOT NULL,
    ai_reasoning TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS duplicate_groups (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    campaign_id INTEGER NOT NULL REFERENCES campaigns(id) ON DELETE CASCADE,
    primary_post_id INTEGER REFERENCES posts(id) ON DELETE CASCADE,
    topic_signature TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS duplicate_posts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    group_id INTEGER NOT NULL REFERENCES duplicate_groups(id) ON DELETE CASCADE,
    post_id INTEGER NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
    similarity_score REAL NOT NULL DEFAULT 0.8
);

CREATE TABLE IF NOT EXISTS articles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    post_id INTEGER UNIQUE REFERENCES posts(id) ON DELETE CASCADE,
    campaign_id INTEGER NOT NULL REFERENCES campaigns(id) ON DELETE CASCADE,
    headline TEXT NOT NULL,
    content TEXT NOT NULL,
    word_count INTEGER NOT NULL DEFAULT 0,
    rank INTEGER,
    is_active INTEGER NOT NULL DEFAULT 0,
    skipped INTEGER NOT NULL DEFAULT 0,
    fact_check_score INTEGER,
    fact_check_details TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS manual_articles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    campaign_id INTEGER NOT NULL REFERENCES campaigns(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    image_url TEXT NOT NULL DEFAULT '',
    source_url TEXT NOT NULL DEFAULT '',
    rank INTEGER,
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS user_activities (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    campaign_id INTEGER REFERENCES campaigns(id) ON DELETE CASCADE,
    user_id TEXT NOT NULL DEFAULT 'system',
    action TEXT NOT NULL,
    details TEXT NOT NULL DEFAULT '{}',
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS app_settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS archived_articles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    campaign_id INTEGER NOT NULL,
    original_article_id INTEGER,
    headline TEXT NOT NULL,
    content TEXT NOT NULL,
    rank INTEGER,
    archived_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS archived_posts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    campaign_id INTEGER NOT NULL,
    original_post_id INTEGER,
    external_id TEXT NOT NULL,
    title TEXT NOT NULL,
    source_url TEXT NOT NULL DEFAULT '',
    archived_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS link_clicks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    campaign_id INTEGER REFERENCES campaigns(id) ON DELETE CASCADE,
    campaign_date TEXT NOT NULL,
    section TEXT NOT NULL DEFAULT '',
    url TEXT NOT NULL,
    subscriber_email TEXT NOT NULL DEFAULT '',
    clicked_at TIMESTAMP NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_posts_campaign ON posts(campaign_id);
CREATE INDEX IF NOT EXISTS idx_articles_campaign ON articles(campaign_id);
CREATE INDEX IF NOT EXISTS idx_campaigns_date ON campaigns(date);
CREATE INDEX IF NOT EXISTS idx_activities_campaign ON user_activities(campaign_id);
"""

# Child tables first; every row here is keyed by campaign_id
CAMPAIGN_CHILD_TABLES = (
    "campaign_events",
    "articles",
    "manual_articles",
    "duplicate_groups",
    "posts",
    "road_work_items",
    "campaign_dining_selections",
    "campaign_vrbo_selections",
    "poll_responses",
    "user_activities",
    "archived_articles",
    "archived_posts",
    "link_clicks",
    "job_runs",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _iso(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class Database:
    """Repository over a single SQLite file."""

    def __init__(self, db_path: str = "scoop.db"):
        """Open (and create if needed) the database.

        Args:
            db_path: Path to the SQLite file
        """
        self.db_path = Path(db_path)
        if self.db_path.parent and not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside a transaction; commit on success."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_database(self):
        """Create all tables."""
        from scoop.core.catalog_store import CATALOG_SCHEMA

        with self.connection() as conn:
            conn.executescript(SCHEMA)
            conn.executescript(CATALOG_SCHEMA)
        logger.debug(f"Database ready at {self.db_path}")

    # ------------------------------------------------------------------
    # Feeds

    def add_feed(self, url: str, name: str, active: bool = True) -> Feed:
        with self.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO feeds (url, name, active) VALUES (?, ?, ?)",
                (url, name, int(active)),
            )
            feed_id = cursor.lastrowid
        return Feed(id=feed_id, url=url, name=name, active=active)

    def list_feeds(self, active_only: bool = False) -> List[Feed]:
        query = "SELECT * FROM feeds"
        if active_only:
            query += " WHERE active = 1"
        with self.connection() as conn:
            rows = conn.execute(query + " ORDER BY id").fetchall()
        return [Feed(**dict(row)) for row in rows]

    def record_feed_success(self, feed_id: int) -> None:
        with self.connection() as conn:
            conn.execute(
                "UPDATE feeds SET last_processed = ?, processing_errors = 0 WHERE id = ?",
                (_now(), feed_id),
            )

    def record_feed_error(self, feed_id: int) -> None:
        with self.connection() as conn:
            conn.execute(
                "UPDATE feeds SET processing_errors = processing_errors + 1 WHERE id = ?",
                (feed_id,),
            )

    # ------------------------------------------------------------------
    # Campaigns

    def _row_to_campaign(self, row: sqlite3.Row) -> Campaign:
        data = dict(row)
        metrics = data.pop("metrics", None)
        if metrics:
            data["metrics"] = CampaignMetrics(**json.loads(metrics))
        return Campaign(**data)

    def create_campaign(
        self, campaign_date: date, status: CampaignStatus = CampaignStatus.DRAFT
    ) -> Campaign:
        with self.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO campaigns (date, status, created_at) VALUES (?, ?, ?)",
                (campaign_date.isoformat(), CampaignStatus(status).value, _now()),
            )
            campaign_id = cursor.lastrowid
        logger.info(f"Created campaign {campaign_id} for {campaign_date}")
        return self.get_campaign(campaign_id)

    def get_campaign(self, campaign_id: int) -> Campaign:
        """Fetch a campaign.

        Raises:
            NotFoundError: If no campaign has this id
        """
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM campaigns WHERE id = ?", (campaign_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"Campaign {campaign_id} not found")
        return self._row_to_campaign(row)

    def list_campaigns(self, limit: int = 30, status: Optional[str] = None) -> List[Campaign]:
        query = "SELECT * FROM campaigns"
        params: List[Any] = []
        if status:
            query += " WHERE status = ?"
            params.append(status)
        query += " ORDER BY date DESC, id DESC LIMIT ?"
        params.append(limit)
        with self.connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_campaign(row) for row in rows]

    def campaigns_for_date(self, campaign_date: date) -> List[Campaign]:
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM campaigns WHERE date = ? ORDER BY id",
                (campaign_date.isoformat(),),
            ).fetchall()
        return [self._row_to_campaign(row) for row in rows]

    def update_campaign(self, campaign_id: int, **fields: Any) -> Campaign:
        """Update campaign columns and return the fresh row."""
        if "metrics" in fields and isinstance(fields["metrics"], CampaignMetrics):
            fields["metrics"] = fields["metrics"].model_dump_json()
        if "status" in fields:
            fields["status"] = CampaignStatus(fields["status"]).value
        assignments = ", ".join(f"{column} = ?" for column in fields)
        values = [_iso(v) for v in fields.values()] + [campaign_id]
        with self.connection() as conn:
            cursor = conn.execute(
                f"UPDATE campaigns SET {assignments} WHERE id = ?", values
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Campaign {campaign_id} not found")
        return self.get_campaign(campaign_id)

    def delete_campaign(self, campaign_id: int) -> Dict[str, int]:
        """Delete a campaign and every row that belongs to it.

        Returns:
            Number of rows removed per table

        Raises:
            NotFoundError: If no campaign has this id
        """
        removed: Dict[str, int] = {}
        with self.connection() as conn:
            if conn.execute(
                "SELECT 1 FROM campaigns WHERE id = ?", (campaign_id,)
            ).fetchone() is None:
                raise NotFoundError(f"Campaign {campaign_id} not found")

            post_ids = "SELECT id FROM posts WHERE campaign_id = ?"
            removed["duplicate_posts"] = conn.execute(
                "DELETE FROM duplicate_posts WHERE post_id IN (" + post_ids + ") "
                "OR group_id IN (SELECT id FROM duplicate_groups WHERE campaign_id = ?)",
                (campaign_id, campaign_id),
            ).rowcount
            removed["post_ratings"] = conn.execute(
                f"DELETE FROM post_ratings WHERE post_id IN ({post_ids})",
                (campaign_id,),
            ).rowcount
            for table in CAMPAIGN_CHILD_TABLES:
                removed[table] = conn.execute(
                    f"DELETE FROM {table} WHERE campaign_id = ?", (campaign_id,)
                ).rowcount
            removed["campaigns"] = conn.execute(
                "DELETE FROM campaigns WHERE id = ?", (campaign_id,)
            ).rowcount

        logger.info(
            f"🗑️ Deleted campaign {campaign_id} "
            f"({sum(removed.values()) - 1} dependent rows)"
        )
        return removed

    # ------------------------------------------------------------------
    # Job runs (idempotency keys)

    def claim_job(
        self, campaign_date: date, job_type: str, campaign_id: Optional[int] = None
    ) -> int:
        """Claim the (campaign date, job type) key.

        Returns:
            Job run id

        Raises:
            JobAlreadyClaimed: If the key was claimed before
        """
        try:
            with self.connection() as conn:
                cursor = conn.execute(
                    "INSERT INTO job_runs (campaign_date, job_type, campaign_id, started_at) "
                    "VALUES (?, ?, ?, ?)",
                    (campaign_date.isoformat(), job_type, campaign_id, _now()),
                )
                return cursor.lastrowid
        except sqlite3.IntegrityError:
            raise JobAlreadyClaimed(
                f"{job_type} already ran for {campaign_date}",
                campaign_date=campaign_date.isoformat(),
                job_type=job_type,
            )

    def finish_job(
        self,
        job_id: int,
        status: str,
        details: Optional[Dict[str, Any]] = None,
        campaign_id: Optional[int] = None,
    ) -> None:
        with self.connection() as conn:
            conn.execute(
                "UPDATE job_runs SET status = ?, details = ?, finished_at = ?, "
                "campaign_id = COALESCE(?, campaign_id) WHERE id = ?",
                (status, json.dumps(details or {}, default=str), _now(), campaign_id, job_id),
            )

    def release_job(self, campaign_date: date, job_type: str) -> bool:
        """Drop a claim so the job can run again (manual re-trigger)."""
        with self.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM job_runs WHERE campaign_date = ? AND job_type = ?",
                (campaign_date.isoformat(), job_type),
            )
        return cursor.rowcount > 0

    def get_job(self, campaign_date: date, job_type: str) -> Optional[Dict[str, Any]]:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM job_runs WHERE campaign_date = ? AND job_type = ?",
                (campaign_date.isoformat(), job_type),
            ).fetchone()
        return dict(row) if row else None

    # ------------------------------------------------------------------
    # Posts, ratings and duplicates

    def insert_post(self, post: Post) -> Optional[Post]:
        """Store a post unless the feed already delivered the same item.

        Returns:
            The stored post with its id, or None for a duplicate
        """
        try:
            with self.connection() as conn:
                cursor = conn.execute(
                    "INSERT INTO posts (feed_id, campaign_id, external_id, title, description, "
                    "content, author, publication_date, source_url, image_url, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        post.feed_id,
                        post.campaign_id,
                        post.external_id,
                        post.title,
                        post.description,
                        post.content,
                        post.author,
                        _iso(post.publication_date),
                        post.source_url,
                        post.image_url,
                        _now(),
                    ),
                )
        except sqlite3.IntegrityError:
            logger.debug(f"Post already stored: {post.external_id}")
            return None
        return post.model_copy(update={"id": cursor.lastrowid})

    def posts_for_campaign(self, campaign_id: int) -> List[Post]:
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM posts WHERE campaign_id = ? ORDER BY id", (campaign_id,)
            ).fetchall()
        return [self._row_to_post(row) for row in rows]

    @staticmethod
    def _row_to_post(row: sqlite3.Row) -> Post:
        data = {k: row[k] for k in row.keys() if k in Post.model_fields}
        return Post(**data)

    def recently_sent_external_ids(self, since: date) -> Set[str]:
        """External ids of posts that went out in campaigns sent on or after ``since``."""
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT p.external_id FROM posts p JOIN campaigns c ON c.id = p.campaign_id "
                "WHERE c.status = ? AND c.date >= ?",
                (CampaignStatus.SENT.value, since.isoformat()),
            ).fetchall()
        return {row["external_id"] for row in rows}

    def save_rating(self, post_id: int, rating: PostRating) -> None:
        with self.connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO post_ratings (post_id, interest_level, local_relevance, "
                "community_impact, total_score, ai_reasoning) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    post_id,
                    rating.interest_level,
                    rating.local_relevance,
                    rating.community_impact,
                    rating.total_score,
                    rating.ai_reasoning,
                ),
            )

    def ratings_for_campaign(self, campaign_id: int) -> Dict[int, PostRating]:
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT r.* FROM post_ratings r JOIN posts p ON p.id = r.post_id "
                "WHERE p.campaign_id = ?",
                (campaign_id,),
            ).fetchall()
        return {row["post_id"]: PostRating(**dict(row)) for row in rows}

    def top_rated_posts(
        self, campaign_id: int, limit: int, exclude_post_ids: Optional[Set[int]] = None
    ) -> List[Tuple[Post, PostRating]]:
        """Rated posts of a campaign, best total score first."""
        exclude_post_ids = exclude_post_ids or set()
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT p.*, r.id AS rating_id, r.interest_level, r.local_relevance, "
                "r.community_impact, r.total_score, r.ai_reasoning "
                "FROM posts p JOIN post_ratings r ON r.post_id = p.id "
                "WHERE p.campaign_id = ? ORDER BY r.total_score DESC, p.id",
                (campaign_id,),
            ).fetchall()

        results = []
        for row in rows:
            if row["id"] in exclude_post_ids:
                continue
            rating = PostRating(
                id=row["rating_id"],
                post_id=row["id"],
                interest_level=row["interest_level"],
                local_relevance=row["local_relevance"],
                community_impact=row["community_impact"],
                total_score=row["total_score"],
                ai_reasoning=row["ai_reasoning"],
            )
            results.append((self._row_to_post(row), rating))
            if len(results) >= limit:
                break
        return results

    def save_duplicate_group(
        self,
        campaign_id: int,
        primary_post_id: int,
        duplicate_post_ids: List[int],
        topic_signature: str = "",
        similarity_score: float = 0.8,
    ) -> int:
        with self.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO duplicate_groups (campaign_id, primary_post_id, topic_signature, "
                "created_at) VALUES (?, ?, ?, ?)",
                (campaign_id, primary_post_id, topic_signature, _now()),
            )
            group_id = cursor.lastrowid
            conn.executemany(
                "INSERT INTO duplicate_posts (group_id, post_id, similarity_score) "
                "VALUES (?, ?, ?)",
                [(group_id, post_id, similarity_score) for post_id in duplicate_post_ids],
            )
        return group_id

    def duplicate_post_ids(self, campaign_id: int) -> Set[int]:
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT d.post_id FROM duplicate_posts d "
                "JOIN duplicate_groups g ON g.id = d.group_id WHERE g.campaign_id = ?",
                (campaign_id,),
            ).fetchall()
        return {row["post_id"] for row in rows}

    # ------------------------------------------------------------------
    # Articles

    _ARTICLE_SELECT = (
        "SELECT a.*, COALESCE(p.source_url, '') AS source_url, "
        "COALESCE(p.image_url, '') AS image_url, COALESCE(p.author, '') AS author, "
        "COALESCE(r.total_score, 0) AS total_score "
        "FROM articles a LEFT JOIN posts p ON p.id = a.post_id "
        "LEFT JOIN post_ratings r ON r.post_id = a.post_id"
    )

    @staticmethod
    def _row_to_article(row: sqlite3.Row) -> Article:
        data = {k: row[k] for k in row.keys() if k in Article.model_fields}
        data["fact_check_details"] = data.get("fact_check_details") or ""
        return Article(**data)

    def insert_article(self, article: Article) -> Article:
        with self.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO articles (post_id, campaign_id, headline, content, word_count, "
                "rank, is_active, skipped, fact_check_score, fact_check_details, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    article.post_id,
                    article.campaign_id,
                    article.headline,
                    article.content,
                    article.word_count,
                    article.rank,
                    int(article.is_active),
                    int(article.skipped),
                    article.fact_check_score,
                    article.fact_check_details,
                    _now(),
                ),
            )
            article_id = cursor.lastrowid
        return self.get_article(article_id)

    def get_article(self, article_id: int) -> Article:
        """Fetch an article.

        Raises:
            NotFoundError: If no article has this id
        """
        with self.connection() as conn:
            row = conn.execute(
                f"{self._ARTICLE_SELECT} WHERE a.id = ?", (article_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"Article {article_id} not found")
        return self._row_to_article(row)

    def articles_for_campaign(self, campaign_id: int) -> List[Article]:
        """All articles of a campaign, ranked ones first."""
        with self.connection() as conn:
            rows = conn.execute(
                f"{self._ARTICLE_SELECT} WHERE a.campaign_id = ? "
                "ORDER BY a.rank IS NULL, a.rank, total_score DESC, a.id",
                (campaign_id,),
            ).fetchall()
        return [self._row_to_article(row) for row in rows]

    def update_article(self, article_id: int, **fields: Any) -> Article:
        for flag in ("is_active", "skipped"):
            if flag in fields:
                fields[flag] = int(bool(fields[flag]))
        assignments = ", ".join(f"{column} = ?" for column in fields)
        with self.connection() as conn:
            cursor = conn.execute(
                f"UPDATE articles SET {assignments} WHERE id = ?",
                list(fields.values()) + [article_id],
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Article {article_id} not found")
        return self.get_article(article_id)

    def save_article_positions(self, articles: List[Article]) -> None:
        """Persist rank, active and skipped flags for many articles at once."""
        with self.connection() as conn:
            conn.executemany(
                "UPDATE articles SET rank = ?, is_active = ?, skipped = ? WHERE id = ?",
                [
                    (a.rank, int(a.is_active), int(a.skipped), a.id)
                    for a in articles
                ],
            )

    def add_manual_article(self, article: ManualArticle) -> ManualArticle:
        with self.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO manual_articles (campaign_id, title, content, image_url, "
                "source_url, rank, is_active) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    article.campaign_id,
                    article.title,
                    article.content,
                    article.image_url,
                    article.source_url,
                    article.rank,
                    int(article.is_active),
                ),
            )
        return article.model_copy(update={"id": cursor.lastrowid})

    def manual_articles_for_campaign(self, campaign_id: int) -> List[ManualArticle]:
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM manual_articles WHERE campaign_id = ? "
                "ORDER BY rank IS NULL, rank, id",
                (campaign_id,),
            ).fetchall()
        return [ManualArticle(**dict(row)) for row in rows]

    # ------------------------------------------------------------------
    # Activity log, settings, archive, clicks

    def log_activity(
        self,
        campaign_id: Optional[int],
        action: str,
        user_id: str = "system",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        with self.connection() as conn:
            conn.execute(
                "INSERT INTO user_activities (campaign_id, user_id, action, details, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (campaign_id, user_id, action, json.dumps(details or {}, default=str), _now()),
            )

    def activities_for_campaign(self, campaign_id: int) -> List[UserActivity]:
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM user_activities WHERE campaign_id = ? ORDER BY id",
                (campaign_id,),
            ).fetchall()
        activities = []
        for row in rows:
            data = dict(row)
            data["details"] = json.loads(data["details"] or "{}")
            activities.append(UserActivity(**data))
        return activities

    def get_setting(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT value FROM app_settings WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row else default

    def set_setting(self, key: str, value: str) -> None:
        with self.connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO app_settings (key, value) VALUES (?, ?)",
                (key, value),
            )

    def archive_campaign(self, campaign_id: int) -> int:
        """Snapshot a campaign's articles and posts into the archive tables.

        Returns:
            Number of articles archived
        """
        now = _now()
        with self.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO archived_articles (campaign_id, original_article_id, headline, "
                "content, rank, archived_at) SELECT campaign_id, id, headline, content, rank, ? "
                "FROM articles WHERE campaign_id = ? AND is_active = 1 AND skipped = 0",
                (now, campaign_id),
            )
            archived = cursor.rowcount
            conn.execute(
                "INSERT INTO archived_posts (campaign_id, original_post_id, external_id, title, "
                "source_url, archived_at) SELECT campaign_id, id, external_id, title, "
                "source_url, ? FROM posts WHERE campaign_id = ?",
                (now, campaign_id),
            )
        return archived

    def record_click(
        self,
        url: str,
        campaign_date: str,
        section: str = "",
        subscriber_email: str = "",
        campaign_id: Optional[int] = None,
    ) -> None:
        with self.connection() as conn:
            conn.execute(
                "INSERT INTO link_clicks (campaign_id, campaign_date, section, url, "
                "subscriber_email, clicked_at) VALUES (?, ?, ?, ?, ?, ?)",
                (campaign_id, campaign_date, section, url, subscriber_email, _now()),
            )

    def count_rows(self, table: str, campaign_id: int) -> int:
        """Rows in ``table`` belonging to a campaign."""
        with self.connection() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) AS n FROM {table} WHERE campaign_id = ?", (campaign_id,)
            ).fetchone()
        return row["n"]
