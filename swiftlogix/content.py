"""
Static marketing content for the public pages, plus the contact form.
"""

import logging

from swiftlogix.auth import EMAIL_PATTERN
from swiftlogix.errors import ValidationError
from swiftlogix.schemas import ContactRequest

logger = logging.getLogger(__name__)


COMPANY = {
    "name": "SwiftLogix",
    "tagline": "Moving the World Forward",
    "summary": (
        "For over 25 years, SwiftLogix has been a trusted partner in global logistics, "
        "helping businesses of all sizes move their goods efficiently across the world."
    ),
}

SERVICES = [
    {
        "slug": "air-freight",
        "title": "Air Freight",
        "description": "Fast and reliable air cargo services to any destination worldwide. We partner "
                       "with major airlines to ensure your shipments arrive on time, every time.",
        "features": ["Express delivery options", "Temperature-controlled cargo",
                     "Dangerous goods handling", "Real-time tracking"],
    },
    {
        "slug": "ocean-freight",
        "title": "Ocean Freight",
        "description": "Cost-effective sea freight solutions for large shipments. We offer both FCL "
                       "(Full Container Load) and LCL (Less than Container Load) options.",
        "features": ["Full container loads", "Consolidation services",
                     "Port-to-port & door-to-door", "Customs brokerage"],
    },
    {
        "slug": "ground-transport",
        "title": "Ground Transport",
        "description": "Comprehensive road freight services with door-to-door delivery. Our extensive "
                       "network covers major routes across continents.",
        "features": ["FTL & LTL options", "Cross-border logistics", "Expedited shipping", "GPS tracking"],
    },
    {
        "slug": "warehousing",
        "title": "Warehousing & Distribution",
        "description": "State-of-the-art storage facilities with comprehensive inventory management "
                       "and fulfillment services.",
        "features": ["Climate-controlled storage", "Inventory management",
                     "Pick and pack services", "Distribution networks"],
    },
    {
        "slug": "customs-brokerage",
        "title": "Customs Brokerage",
        "description": "Expert customs clearance services to ensure smooth and compliant "
                       "international trade operations.",
        "features": ["Documentation handling", "Duty optimization",
                     "Regulatory compliance", "Trade consulting"],
    },
    {
        "slug": "supply-chain",
        "title": "Supply Chain Solutions",
        "description": "End-to-end supply chain management designed to optimize your operations "
                       "and reduce costs.",
        "features": ["Supply chain design", "Vendor management",
                     "Analytics & reporting", "Risk management"],
    },
]

FEATURES = [
    {"title": "Global Network",
     "description": "Extensive network spanning 150+ countries with strategic partnerships worldwide."},
    {"title": "Secure Handling",
     "description": "Advanced security protocols and insurance options to protect your cargo."},
    {"title": "On-Time Delivery",
     "description": "99.5% on-time delivery rate with real-time tracking and notifications."},
    {"title": "24/7 Support",
     "description": "Dedicated support team available around the clock to assist you."},
    {"title": "Analytics Dashboard",
     "description": "Comprehensive analytics and reporting for complete supply chain visibility."},
    {"title": "Fast Processing",
     "description": "Streamlined customs clearance and documentation for faster turnaround."},
]

STATS = [
    {"value": "25+", "label": "Years of Experience"},
    {"value": "150+", "label": "Countries Served"},
    {"value": "10K+", "label": "Happy Clients"},
    {"value": "50M+", "label": "Packages Delivered"},
]

VALUES = [
    {"title": "Excellence",
     "description": "We strive for excellence in every shipment, every interaction, and every solution we provide."},
    {"title": "Customer Focus",
     "description": "Our customers are at the heart of everything we do. Their success is our success."},
    {"title": "Global Reach",
     "description": "With partners worldwide, we deliver seamless logistics solutions across every continent."},
    {"title": "Innovation",
     "description": "We continuously innovate to provide smarter, faster, and more efficient logistics solutions."},
]

CONTACT_CHANNELS = [
    {"title": "Phone", "details": ["+1 (234) 567-890", "+1 (234) 567-891"], "action": "tel:+1234567890"},
    {"title": "Email", "details": ["info@swiftlogix.com", "support@swiftlogix.com"],
     "action": "mailto:info@swiftlogix.com"},
    {"title": "Office", "details": ["123 Logistics Way", "Port City, PC 12345"], "action": "#"},
    {"title": "Hours", "details": ["Mon-Fri: 8AM - 8PM", "Sat-Sun: 9AM - 5PM"], "action": "#"},
]

COUNTRIES = [
    "USA", "Canada", "UK", "Germany", "France", "China", "Japan",
    "Australia", "Brazil", "India", "Mexico", "South Korea", "Singapore",
    "Netherlands", "Italy", "Spain", "Sweden", "Switzerland",
]

CONTACT_ACKNOWLEDGEMENT = "Message sent successfully! We'll get back to you soon."


def submit_contact(form: ContactRequest) -> str:
    """
    Validate a contact form and acknowledge it. Messages are logged for the
    sales inbox, nothing is stored.
    """
    if not form.name.strip():
        raise ValidationError("Name is required")
    if not EMAIL_PATTERN.match(form.email.strip()):
        raise ValidationError("Please enter a valid email address")
    if not form.message.strip():
        raise ValidationError("Message is required")

    logger.info("Contact request received", extra={
        "contact_email": form.email.strip(),
        "service": form.service or None,
        "company": form.company or None,
    })
    return CONTACT_ACKNOWLEDGEMENT
