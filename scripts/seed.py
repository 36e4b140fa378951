"""Database seeder for local development and demos."""
import asyncio
import argparse
import random
import time
from datetime import datetime, timezone, timedelta

from newsroom.database import engine, async_session, Base
from newsroom.models import Article, ArticleStatus, Category, Comment, CommentStatus, Tag, User, UserRole
from newsroom.security import hash_password
from newsroom.slugs import slugify

DEFAULT_PASSWORD = "password123"

STAFF = [
    ("admin@newsroom.local", "Site Admin", UserRole.ADMIN),
    ("editor@newsroom.local", "Desk Editor", UserRole.EDITOR),
    ("author@newsroom.local", "Staff Writer", UserRole.AUTHOR),
]

CATEGORIES = {
    "World": ["Europe", "Asia"],
    "Technology": ["Science", "Gadgets"],
    "Business": [],
    "Sports": [],
}

TAGS = ["breaking", "analysis", "opinion", "interview", "elections", "climate",
        "markets", "startups", "ai", "health", "football", "travel"]


async def seed(small: bool = False):
    num_authors = 3 if small else 15
    num_articles = 30 if small else 1000
    num_comments_per_article = 2 if small else 6

    print(f"Seeding: {len(STAFF) + num_authors} users, {num_articles} articles")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    password_hash = hash_password(DEFAULT_PASSWORD)

    async with async_session() as session:
        users = []
        for email, name, role in STAFF:
            users.append(User(email=email, name=name, role=role, password_hash=password_hash))
        for i in range(num_authors):
            users.append(User(
                email=f"writer_{i:03d}@newsroom.local",
                name=f"Writer {i}",
                role=UserRole.AUTHOR,
                bio=f"Contributor number {i}.",
                password_hash=password_hash,
            ))
        session.add_all(users)
        await session.flush()
        print(f"  Created {len(users)} users (password: {DEFAULT_PASSWORD})")

        categories = []
        for parent_name, children in CATEGORIES.items():
            parent = Category(name=parent_name, slug=slugify(parent_name))
            session.add(parent)
            await session.flush()
            categories.append(parent)
            for child_name in children:
                child = Category(name=child_name, slug=slugify(child_name), parent_id=parent.id)
                session.add(child)
                categories.append(child)
        await session.flush()
        print(f"  Created {len(categories)} categories")

        tags = [Tag(name=name, slug=slugify(name)) for name in TAGS]
        session.add_all(tags)
        await session.flush()
        print(f"  Created {len(tags)} tags")

        writers = [u for u in users if u.role != UserRole.ADMIN]
        total_comments = 0
        batch_size = 200
        for batch_start in range(0, num_articles, batch_size):
            batch = []
            for i in range(batch_start, min(batch_start + batch_size, num_articles)):
                created = datetime.now(timezone.utc) - timedelta(days=random.randint(0, 365))
                status = random.choices(
                    [ArticleStatus.PUBLISHED, ArticleStatus.DRAFT, ArticleStatus.ARCHIVED],
                    weights=[8, 1, 1],
                )[0]
                topic = random.choice(TAGS)
                title = f"Story {i}: what the {topic} numbers mean"
                article = Article(
                    title=title,
                    slug=f"{slugify(title)}-{i}",
                    content=f"Full reporting for story {i}. " * 30,
                    excerpt=f"A closer look at {topic}.",
                    status=status,
                    view_count=random.randint(0, 5000) if status == ArticleStatus.PUBLISHED else 0,
                    published_at=created if status != ArticleStatus.DRAFT else None,
                    created_at=created,
                    author_id=random.choice(writers).id,
                    category_id=random.choice(categories).id,
                )
                article.tags = random.sample(tags, k=random.randint(1, 3))
                session.add(article)
                batch.append(article)
            await session.flush()

            for article in batch:
                if article.status != ArticleStatus.PUBLISHED:
                    continue
                for n in range(random.randint(0, num_comments_per_article)):
                    session.add(Comment(
                        content=f"Reader comment {n} on story {article.id}.",
                        author_name=f"Reader {random.randint(1, 500)}",
                        author_email=f"reader{random.randint(1, 500)}@example.com",
                        status=random.choice(list(CommentStatus)),
                        article_id=article.id,
                    ))
                    total_comments += 1
            await session.flush()
            print(f"  Batch {batch_start}: {len(batch)} articles created")

        await session.commit()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Articles: {num_articles}")
    print(f"  Comments: {total_comments}")


def main():
    parser = argparse.ArgumentParser(description="Seed the newsroom database")
    parser.add_argument("--small", action="store_true", help="Use a small dataset (30 articles)")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
