"""Database seeder for local development of the article API."""
import argparse
import asyncio
import random
import time
from datetime import datetime, timedelta, timezone

import jwt

from app.config import settings
from app.database import Base, async_session, engine
from app.models import Article, Category, Media, Role, User
from app.services.article_service import reading_time, slugify

TOPICS = ["python", "fastapi", "postgresql", "docker", "kubernetes", "testing",
          "performance", "security", "typescript", "devops"]

CATEGORIES = ["Engineering", "Product", "Culture", "Tutorials"]

WORDS = ("lorem ipsum dolor sit amet consectetur adipiscing elit sed do eiusmod "
         "tempor incididunt ut labore et dolore magna aliqua").split()


def _content(rng: random.Random) -> str:
    return " ".join(rng.choice(WORDS) for _ in range(rng.randint(50, 1200)))


async def seed(small: bool = False, print_tokens: bool = False):
    num_users = 5 if small else 25
    num_articles = 50 if small else 2000
    rng = random.Random(42)

    print(f"Seeding: {num_users} users, {num_articles} articles")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        authenticated = Role(name="Authenticated", description="Default role for signed-in users")
        editor = Role(name=settings.EDITOR_ROLE_NAME, description="May modify any article")
        session.add_all([authenticated, editor])

        categories = [Category(name=name, slug=slugify(name)) for name in CATEGORIES]
        session.add_all(categories)

        covers = [
            Media(name=f"cover-{i}.jpg", url=f"/uploads/cover-{i}.jpg",
                  alternative_text=f"Cover {i}", width=1200, height=630, mime="image/jpeg")
            for i in range(5)
        ]
        session.add_all(covers)
        await session.flush()
        print(f"  Created 2 roles, {len(categories)} categories, {len(covers)} covers")

        users = []
        for i in range(num_users):
            user = User(
                username=f"user_{i:04d}",
                email=f"user_{i:04d}@example.com",
                role_id=editor.id if i == 0 else authenticated.id,
            )
            session.add(user)
            users.append(user)
        await session.flush()
        print(f"  Created {len(users)} users (user_0000 is an editor)")

        batch_size = 500
        for batch_start in range(0, num_articles, batch_size):
            batch_end = min(batch_start + batch_size, num_articles)
            for i in range(batch_start, batch_end):
                title = f"Article {i}: Notes on {rng.choice(TOPICS)}"
                content = _content(rng)
                edited = rng.random() < 0.3
                session.add(Article(
                    title=title,
                    slug=slugify(title),
                    content=content,
                    reading_time=reading_time(content, settings.WORDS_PER_MINUTE),
                    views=rng.randint(0, 5000),
                    is_edited=edited,
                    created_at=datetime.now(timezone.utc) - timedelta(days=rng.randint(0, 365)),
                    author_id=rng.choice(users).id,
                    category_id=rng.choice(categories).id if rng.random() > 0.2 else None,
                    cover_image_id=rng.choice(covers).id if rng.random() > 0.5 else None,
                ))
            await session.flush()
            print(f"  Batch {batch_start}-{batch_end}: articles created")

        await session.commit()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")

    if print_tokens:
        print("\nDevelopment bearer tokens:")
        for user in users[:3]:
            token = jwt.encode({"id": user.id}, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
            print(f"  {user.username}: {token}")


def main():
    parser = argparse.ArgumentParser(description="Seed the article database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (50 articles)")
    parser.add_argument("--print-tokens", action="store_true",
                        help="Print bearer tokens for the first three users")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small, print_tokens=args.print_tokens))


if __name__ == "__main__":
    main()
