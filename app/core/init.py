"""
Application initialization module
Handles initial setup tasks like seeding certificate templates
"""

import logging

from sqlalchemy.orm import Session

from app.services.certificate import CertificateService

logger = logging.getLogger(__name__)


def init_certificate_templates(db: Session) -> None:
    """
    Make sure every credit type has a certificate template.

    Args:
        db: Database session
    """
    try:
        created = CertificateService(db).ensure_default_templates()
        if created:
            logger.info(f"✅ Created {created} default certificate template(s)")
        else:
            logger.info("✅ Certificate templates already present")
    except Exception as e:
        logger.error(f"❌ Failed to initialize certificate templates: {e}")
        db.rollback()
        raise


def initialize_application(db: Session) -> None:
    """
    Run all application initialization tasks.

    Args:
        db: Database session
    """
    logger.info("🚀 Starting application initialization...")

    init_certificate_templates(db)

    logger.info("✅ Application initialization completed!")
