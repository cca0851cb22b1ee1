"""Seed corpus for the advisory knowledge base."""
# ruff: noqa: E501

from datetime import datetime, timezone

from advisor_engine.context.models import KnowledgeDocument


def _date(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


SEED_DOCUMENTS: tuple[KnowledgeDocument, ...] = (
    KnowledgeDocument(
        id="governance-101",
        title="Nonprofit Governance Best Practices",
        content="""Effective nonprofit governance requires clear roles and responsibilities. The board should focus on strategic oversight while management handles day-to-day operations. Key components include:

1. Board Composition: Diverse skills, experience, and perspectives
2. Clear Policies: Conflict of interest, financial oversight, executive compensation
3. Regular Meetings: Structured agendas, proper documentation
4. Financial Oversight: Budget approval, audit review, financial monitoring
5. Strategic Planning: Long-term vision, goal setting, performance measurement

Common governance challenges include board engagement, succession planning, and balancing oversight with support for management.""",
        category="governance",
        tags=["board", "oversight", "policies", "strategic planning"],
        last_updated=_date(2024, 1, 15),
    ),
    KnowledgeDocument(
        id="fundraising-strategy",
        title="Comprehensive Fundraising Strategy Framework",
        content="""A successful fundraising strategy requires multiple revenue streams and donor stewardship:

1. Individual Giving: Annual campaigns, major gifts, planned giving
2. Foundation Grants: Research, relationship building, proposal writing
3. Corporate Partnerships: Sponsorships, employee giving, cause marketing
4. Events: Galas, peer-to-peer fundraising, community events
5. Online Fundraising: Website donations, social media campaigns, crowdfunding

Key principles: Donor retention costs less than acquisition, storytelling drives engagement, data tracking improves results. Focus on building relationships, not just transactions.""",
        category="fundraising",
        tags=["donors", "grants", "events", "online", "stewardship"],
        last_updated=_date(2024, 1, 10),
    ),
    KnowledgeDocument(
        id="civicrm-implementation",
        title="CiviCRM Implementation Guide",
        content="""CiviCRM implementation requires careful planning and a phased approach:

Planning Phase:
- Assess current systems and data
- Define requirements and workflows
- Plan data migration strategy
- Identify customization needs

Implementation Phase:
- Install and configure CiviCRM
- Set up contact types and custom fields
- Configure contribution and membership settings
- Create event and case management workflows
- Import and clean data

Training Phase:
- Staff training on core functionality
- Admin training for ongoing management
- Create documentation and procedures
- Establish backup and maintenance routines

Best practices: Start simple, train thoroughly, maintain data quality, leverage community support.""",
        category="crm-usage",
        tags=["implementation", "migration", "training", "configuration"],
        last_updated=_date(2024, 1, 5),
    ),
    KnowledgeDocument(
        id="volunteer-management",
        title="Effective Volunteer Management Strategies",
        content="""Volunteer management is crucial for nonprofit success and requires a systematic approach:

Recruitment:
- Clear role descriptions and expectations
- Multiple recruitment channels (website, social media, partnerships)
- Skills-based matching
- Inclusive and accessible opportunities

Onboarding:
- Welcome orientation and training
- Background checks where appropriate
- Clear policies and procedures
- Mentor assignments for new volunteers

Retention:
- Regular recognition and appreciation
- Meaningful work assignments
- Growth and development opportunities
- Flexible scheduling and remote options
- Regular feedback and communication

Volunteer engagement statistics show that 68% of volunteers stop due to poor management, making effective systems essential.""",
        category="hr",
        tags=["volunteers", "recruitment", "retention", "training"],
        last_updated=_date(2024, 1, 12),
    ),
    KnowledgeDocument(
        id="strategic-planning",
        title="Strategic Planning for Small Nonprofits",
        content="""A strategic plan connects mission to a small number of measurable priorities:

1. Environmental Scan: Review community needs, funding trends, and peer organizations
2. Stakeholder Input: Survey board, staff, volunteers, and people served
3. Priorities: Choose three to five goals the organization can realistically resource
4. Action Plans: Assign owners, timelines, and budgets for each goal
5. Monitoring: Review progress quarterly and adjust annually

Plans work best when short, owned by the board, and tied to the annual budget.""",
        category="planning",
        tags=["strategy", "goals", "board", "budget"],
        last_updated=_date(2024, 2, 2),
    ),
    KnowledgeDocument(
        id="operations-finance-it",
        title="Operations, Finance and IT Foundations",
        content="""Sound operations let program staff focus on mission:

- Finance: Monthly reconciliations, cash-flow forecasting, restricted fund tracking
- Controls: Segregation of duties, approval thresholds, documented expense policies
- IT: Cloud productivity suites, nonprofit software discounts, regular backups
- Security: Multi-factor authentication, least-privilege access, staff phishing training
- Compliance: Track charity filing deadlines and receipting requirements

Small organizations should document processes so knowledge survives staff turnover.""",
        category="operations",
        tags=["finance", "it", "controls", "security", "compliance"],
        last_updated=_date(2024, 2, 9),
    ),
    KnowledgeDocument(
        id="marketing-communications",
        title="Marketing and Communications on a Budget",
        content="""Nonprofit communications should turn impact into stories supporters share:

1. Audience: Define two or three priority audiences and what each cares about
2. Message: One clear sentence on the problem, the solution, and the ask
3. Channels: Email newsletters usually outperform social media for donations
4. Content: Pair outcome data with a named beneficiary story (with consent)
5. Measurement: Track open rates, click-through, and gifts attributed to each campaign

Consistency matters more than volume; a monthly rhythm is sustainable for most teams.""",
        category="marketing",
        tags=["communications", "storytelling", "email", "social media"],
        last_updated=_date(2024, 2, 16),
    ),
)
