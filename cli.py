#!/usr/bin/env python3
"""blobvault CLI - serve blobs, run retention sweeps and manage the index."""
import argparse
import logging
import sys


def setup_logging(log_level: str):
    """Configure logging for the CLI."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def _open_service(args):
    """Create a database session and a ready storage service."""
    from blobvault.app import create_storage
    from blobvault.config import Config
    from blobvault.core import BlobIndex, StorageService
    from blobvault.core.storage_config import load_storage_settings
    from blobvault.models.base import create_session, init_db

    settings = load_storage_settings(args.config)
    database_url = args.database_url or Config.DATABASE_URL
    init_db(database_url)

    backend = create_storage(settings)
    backend.setup()

    db = create_session(database_url)
    return StorageService(BlobIndex(db), backend, settings), db


def cmd_serve(args):
    """Start the blob server."""
    from blobvault.app import app, close_storage, init_storage
    from blobvault.config import Config
    from blobvault.core.storage_config import load_storage_settings
    from blobvault.models.base import init_db

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    if args.database_url:
        app.config['DATABASE_URL'] = args.database_url
    init_db(app.config.get('DATABASE_URL', Config.DATABASE_URL))
    init_storage(app, load_storage_settings(args.config))

    host = args.host or '0.0.0.0'
    port = args.port or Config.PORT
    debug = args.debug if args.debug is not None else Config.DEBUG

    logger.info(f"Starting blob server on {host}:{port}")
    try:
        app.run(debug=debug, host=host, port=port, use_reloader=False)
    finally:
        close_storage(app)


def cmd_prune(args):
    """Run one retention sweep."""
    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    service, db = _open_service(args)
    try:
        result = service.prune_storage()
        logger.info(
            f"Checked {result.checked} blobs, removed {result.total_removed} "
            f"({len(result.removed)} expired, {len(result.orphans_removed)} orphaned, "
            f"{len(result.untracked_removed)} untracked), {result.errors} errors"
        )
    finally:
        db.close()
        service.backend.close()

    return 1 if result.errors else 0


def cmd_add(args):
    """Add a file to the store."""
    from blobvault.core import stage_upload
    from blobvault.utils.mime import type_for

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    service, db = _open_service(args)
    try:
        with open(args.file, 'rb') as f:
            upload = stage_upload(f, type=args.type or type_for(args.file))
        blob = service.add_from_upload(upload)
        for pubkey in args.pubkey or []:
            if not service.index.has_owner(blob.sha256, pubkey):
                service.index.add_owner(blob.sha256, pubkey)
        logger.info(f"Stored {blob.sha256} ({blob.type}, {blob.size} bytes)")
        print(blob.sha256)
    finally:
        db.close()
        service.backend.close()


def cmd_init_db(args):
    """Create the index tables."""
    from blobvault.config import Config
    from blobvault.models.base import init_db

    setup_logging(args.log_level)
    database_url = args.database_url or Config.DATABASE_URL
    init_db(database_url)
    logging.getLogger(__name__).info(f"Initialized database at {database_url}")


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description='blobvault - content-addressed blob storage',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start the server
  %(prog)s serve --port 3000

  # Run a retention sweep with rules from a YAML file
  %(prog)s --config storage.yml prune

  # Store a file owned by a pubkey
  %(prog)s add photo.png --pubkey <hex pubkey>
"""
    )

    # Global options
    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Set the logging level (default: INFO)'
    )
    parser.add_argument(
        '--config',
        help='Storage settings YAML file (default: $STORAGE_CONFIG_FILE or environment)'
    )
    parser.add_argument(
        '--database-url',
        help='SQLAlchemy database URL (default: $DATABASE_URL)'
    )

    subparsers = parser.add_subparsers(
        dest='command',
        help='Available commands',
        required=True
    )

    serve_parser = subparsers.add_parser('serve', help='Start the blob server')
    serve_parser.add_argument('--host', help='Host to bind to (default: 0.0.0.0)')
    serve_parser.add_argument('--port', type=int, help='Port to bind to (default: from config)')
    serve_parser.add_argument('--debug', action='store_true', help='Enable debug mode')
    serve_parser.add_argument('--no-debug', dest='debug', action='store_false', help='Disable debug mode')
    serve_parser.set_defaults(func=cmd_serve, debug=None)

    prune_parser = subparsers.add_parser('prune', help='Run one retention sweep')
    prune_parser.set_defaults(func=cmd_prune)

    add_parser = subparsers.add_parser('add', help='Add a file to the store')
    add_parser.add_argument('file', help='Path of the file to store')
    add_parser.add_argument('--type', help='MIME type (guessed from the file name if omitted)')
    add_parser.add_argument('--pubkey', action='append', help='Owner pubkey (repeatable)')
    add_parser.set_defaults(func=cmd_add)

    init_parser = subparsers.add_parser('init-db', help='Create the index tables')
    init_parser.set_defaults(func=cmd_init_db)

    args = parser.parse_args(argv)
    return args.func(args) or 0


if __name__ == '__main__':
    sys.exit(main())
