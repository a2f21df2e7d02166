"""
Education campaign catalog.

Three series ship by default: buyer_tips, financing and maintenance.
Campaign names are stable identifiers; they are part of the idempotency
key for drip entries, so renaming one reschedules it for every call.
"""

import logging
from typing import List

from database.records import EducationCampaign
from database.sink import RecordSink

logger = logging.getLogger(__name__)

SERIES = ("buyer_tips", "financing", "maintenance")


DEFAULT_CAMPAIGNS: List[EducationCampaign] = [
    # Buyer tips
    EducationCampaign(
        name="Buyer Tip #1: Research Before You Shop",
        series="buyer_tips",
        sequence_order=1,
        subject="🚗 Car Buying Tip #1: Do Your Research First",
        delay_days=1,
        body="""
<h3>Smart Car Buying Starts with Research</h3>
<div class="tip">
<strong>Tip #1:</strong> Before visiting dealerships, spend time researching online to understand:
</div>
<ul>
<li><strong>Market Prices:</strong> Check multiple sources for the fair market value of your desired vehicle</li>
<li><strong>Reliability Ratings:</strong> Look up Consumer Reports and J.D. Power ratings</li>
<li><strong>Common Issues:</strong> Search for known problems with specific years and models</li>
<li><strong>Fuel Economy:</strong> Compare real-world MPG from actual owners</li>
</ul>
<p><strong>Pro Tip:</strong> Create a spreadsheet comparing your top 3-5 choices with price, features, and ratings.</p>
""",
    ),
    EducationCampaign(
        name="Buyer Tip #2: Timing Your Purchase",
        series="buyer_tips",
        sequence_order=2,
        subject="🚗 Car Buying Tip #2: When to Buy for Best Deals",
        delay_days=3,
        body="""
<h3>The Best Times to Buy a Car</h3>
<div class="tip">
<strong>Tip #2:</strong> Timing can save you thousands on your purchase.
</div>
<h4>Best Times to Buy:</h4>
<ul>
<li><strong>End of Month:</strong> Salespeople have quotas to meet</li>
<li><strong>End of Quarter:</strong> Dealerships push for quarterly goals</li>
<li><strong>October-December:</strong> Year-end clearances for new models</li>
<li><strong>Monday-Tuesday:</strong> Less busy, more negotiating time</li>
</ul>
<p><strong>Remember:</strong> A patient buyer is a smart buyer!</p>
""",
    ),
    EducationCampaign(
        name="Buyer Tip #3: Test Drive Like a Pro",
        series="buyer_tips",
        sequence_order=3,
        subject="🚗 Car Buying Tip #3: Master the Test Drive",
        delay_days=5,
        body="""
<h3>How to Test Drive Like an Expert</h3>
<div class="tip">
<strong>Tip #3:</strong> A proper test drive reveals more than a quick spin around the block.
</div>
<h4>Your Test Drive Checklist:</h4>
<ul>
<li>Drive in various conditions (highway, city, parking)</li>
<li>Test all features (AC, radio, windows, seats)</li>
<li>Listen for unusual noises</li>
<li>Check blind spots and visibility</li>
<li>Test acceleration and braking</li>
</ul>
<p><strong>Pro Tip:</strong> Test drive your top 2-3 choices back-to-back for easier comparison.</p>
""",
    ),
    # Financing
    EducationCampaign(
        name="Finance Tip #1: Know Your Credit Score",
        series="financing",
        sequence_order=1,
        subject="💰 Financing Tip #1: Your Credit Score Matters",
        delay_days=2,
        body="""
<h3>Understanding Your Credit Score's Impact</h3>
<div class="tip">
<strong>Finance Tip #1:</strong> Your credit score directly affects your interest rate and monthly payment.
</div>
<ul>
<li><strong>750+:</strong> Excellent - Best rates available</li>
<li><strong>700-749:</strong> Good - Competitive rates</li>
<li><strong>650-699:</strong> Fair - Higher rates</li>
<li><strong>Below 650:</strong> May need co-signer</li>
</ul>
<p><strong>Action Step:</strong> Check your credit score for free at annualcreditreport.com before shopping.</p>
""",
    ),
    EducationCampaign(
        name="Finance Tip #2: Down Payment Strategy",
        series="financing",
        sequence_order=2,
        subject="💰 Financing Tip #2: Smart Down Payment Planning",
        delay_days=4,
        body="""
<h3>How Much Should You Put Down?</h3>
<div class="tip">
<strong>Finance Tip #2:</strong> A larger down payment saves money but isn't always necessary.
</div>
<ul>
<li>Lower monthly payments</li>
<li>Less interest paid overall</li>
<li>Better loan approval odds</li>
</ul>
<p><strong>Rule of Thumb:</strong> Put down at least 10% if possible, but keep 3-6 months expenses in savings.</p>
""",
    ),
    # Maintenance
    EducationCampaign(
        name="Maintenance Tip #1: Essential First 1000 Miles",
        series="maintenance",
        sequence_order=1,
        subject="🔧 New Car Care: The First 1000 Miles",
        delay_days=7,
        body="""
<h3>Breaking In Your New Vehicle</h3>
<div class="tip">
<strong>Maintenance Tip #1:</strong> The first 1000 miles set the foundation for your car's longevity.
</div>
<ul>
<li>Vary your speed (avoid cruise control)</li>
<li>Avoid hard acceleration or braking</li>
<li>Don't tow during break-in period</li>
<li>Check fluids weekly</li>
</ul>
""",
    ),
    EducationCampaign(
        name="Maintenance Tip #2: DIY vs Professional Service",
        series="maintenance",
        sequence_order=2,
        subject="🔧 Car Care: What You Can Do Yourself",
        delay_days=14,
        body="""
<h3>Save Money with Basic DIY Maintenance</h3>
<div class="tip">
<strong>Maintenance Tip #2:</strong> Some maintenance tasks are easy DIY projects that save money.
</div>
<ul>
<li>Air filter replacement</li>
<li>Windshield wipers</li>
<li>Battery terminal cleaning</li>
<li>Tire pressure checks</li>
</ul>
<p><strong>Leave to professionals:</strong> brakes, transmission and airbag systems.</p>
""",
    ),
]


async def seed_campaigns(sink: RecordSink, campaigns: List[EducationCampaign] = None) -> int:
    """
    Upsert the campaign catalog into the sink.

    Returns:
        Number of campaigns written
    """
    written = 0
    for campaign in campaigns if campaigns is not None else DEFAULT_CAMPAIGNS:
        result = await sink.save_campaign(campaign)
        if result.ok:
            written += 1
        else:
            logger.warning(f"Campaign '{campaign.name}' not saved: {result.error}")
    logger.info(f"Seeded {written} education campaigns")
    return written
