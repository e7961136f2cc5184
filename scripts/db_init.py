#!/usr/bin/env python3
"""
Database initialization script
"""
import asyncio
import os
import sys
from pathlib import Path

# Add the app directory to the Python path
current_dir = Path(__file__).parent
root_dir = current_dir.parent
sys.path.insert(0, str(root_dir))

SAMPLE_USERS = [
    {"username": "john_doe", "email": "john@example.com", "bio": "Software Developer"},
    {"username": "jane_smith", "email": "jane@example.com", "bio": "Product Manager"},
    {"username": "bob_wilson", "email": "bob@example.com", "bio": "DevOps Engineer"},
]

SAMPLE_POSTS = [
    ("Welcome to the forum", "Introduce yourself in the comments!"),
    ("Async SQLAlchemy tips", "Eager-load everything you serialize."),
    ("Weekend photo thread", "Share your favourite shots from this weekend."),
]

async def init_database() -> None:
    """Initialize database with tables"""
    from app.db.session import init_db
    from app.config import settings

    print(f"🚀 Initializing database: {settings.database_url}")

    try:
        await init_db()
        print("✅ Database initialized successfully")

        await create_admin()

    except Exception as e:
        print(f"❌ Error initializing database: {e}")
        sys.exit(1)

async def create_admin() -> None:
    """Create the initial admin account if it does not exist"""
    from app.db.session import AsyncSessionLocal
    from app.models.user import UserRole
    from app.schemas.user_schema import UserCreate
    from app.services.auth_service import AuthService
    from app.services.user_service import UserService

    async with AsyncSessionLocal() as db:
        if await UserService(db).get_user_by_username("admin"):
            print("ℹ️  Admin user already exists")
            return

        admin = await AuthService(db).create_user(
            UserCreate(
                username="admin",
                email=os.getenv("ADMIN_EMAIL", "admin@example.com"),
                password=os.getenv("ADMIN_PASSWORD", "Admin123!"),
            ),
            role=UserRole.ADMIN,
        )
        print(f"✅ Created admin user: {admin.username}")

async def seed_sample_data() -> None:
    """Create sample users, posts, comments and likes for development"""
    from app.db.session import AsyncSessionLocal
    from app.schemas.post_schema import PostCreate
    from app.schemas.user_schema import UserCreate
    from app.services.auth_service import AuthService
    from app.services.comment_service import CommentService
    from app.services.like_service import LikeService
    from app.services.post_service import PostService
    from app.services.user_service import UserService

    print("👤 Creating sample data...")

    async with AsyncSessionLocal() as db:
        user_ids = []
        for user_data in SAMPLE_USERS:
            user = await UserService(db).get_user_by_username(user_data["username"])
            if not user:
                user = await AuthService(db).create_user(
                    UserCreate(password="Password123!", **{k: user_data[k] for k in ("username", "email")})
                )
                user.bio = user_data["bio"]
                await db.commit()
            user_ids.append(user.id)

        post_service = PostService(db)
        comment_service = CommentService(db)
        like_service = LikeService(db)

        for index, (title, content) in enumerate(SAMPLE_POSTS):
            author_id = user_ids[index % len(user_ids)]
            post = await post_service.create_post(author_id, PostCreate(title=title, content=content))

            others = [user_id for user_id in user_ids if user_id != author_id]
            top = await comment_service.create_comment(post.id, others[0], "Great post!")
            await comment_service.create_comment(
                post.id, author_id, "Thanks!", parent_id=top.id, reply_to_id=others[0]
            )
            for user_id in others:
                await like_service.like_post(user_id, post.id)

        print(f"✅ Created {len(SAMPLE_POSTS)} posts with comments and likes")

async def check_database_connection() -> bool:
    """Check if database is accessible"""
    from app.db.session import check_db_connection

    try:
        await check_db_connection()
        print("✅ Database connection successful")
        return True
    except Exception as e:
        print(f"❌ Database connection failed: {e!r}")
        return False

async def drop_database(confirm: bool = False) -> None:
    """Drop all database tables"""
    if not confirm:
        print("⚠️  WARNING: This will drop ALL tables and data!")
        print("   Use --confirm flag to proceed")
        return

    from app.db.session import engine
    from app.models import Base

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        print("✅ Database dropped successfully")
    except Exception as e:
        print(f"❌ Error dropping database: {e}")

def main() -> None:
    """Main entry point"""
    import argparse

    parser = argparse.ArgumentParser(description="Database Initialization")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Init command
    subparsers.add_parser("init", help="Create tables and the admin account")

    # Check command
    subparsers.add_parser("check", help="Check database connection")

    # Drop command
    drop_parser = subparsers.add_parser("drop", help="Drop database (DANGEROUS!)")
    drop_parser.add_argument("--confirm", action="store_true", help="Confirm drop")

    # Seed command
    subparsers.add_parser("seed", help="Seed sample users, posts, comments and likes")

    # Reset command
    reset_parser = subparsers.add_parser("reset", help="Drop and reinitialize")
    reset_parser.add_argument("--confirm", action="store_true", help="Confirm reset")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == "init":
            asyncio.run(init_database())

        elif args.command == "check":
            success = asyncio.run(check_database_connection())
            sys.exit(0 if success else 1)

        elif args.command == "drop":
            asyncio.run(drop_database(args.confirm))

        elif args.command == "seed":
            asyncio.run(seed_sample_data())

        elif args.command == "reset":
            if not args.confirm:
                print("⚠️  WARNING: This will drop ALL tables and data!")
                print("   Use --confirm flag to proceed")
                return

            asyncio.run(drop_database(True))
            asyncio.run(init_database())

    except KeyboardInterrupt:
        print("\n⚠️  Operation cancelled by user")
        sys.exit(1)

if __name__ == "__main__":
    main()
