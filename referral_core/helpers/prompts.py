SYSTEM_JSON = "You are a technical recruiting assistant. Always respond with valid JSON only, no markdown or extra text."

JOB_PARSING_PROMPT = """You are an expert technical recruiter. Parse this job description and extract structured data.

Job Title: {title}
Job Description: {description}

Return strict JSON with keys:
requiredSkills, preferredSkills, experienceRange ({{"min": <int>, "max": <int>}}),
seniorityLevel (intern|entry|mid|senior|staff|principal|executive),
domain (backend|frontend|fullstack|data|ml|devops|product|design|mobile),
industry (fintech|ecommerce|saas|consumer|healthcare|edtech|enterprise),
techStack, targetCompanies, benefits, keywords.

- Normalize skill names to short lowercase tokens (e.g. "React.js" -> "react").
- Infer seniority from years of experience if not explicit.
- Extract only mentioned technologies, don't infer.
"""

CONTACT_INSIGHTS_PROMPT = """You are an expert recruiter. Given a job posting, identify key people to reach out to for a referral.

Job Title: {job_title}
Company: {company}
Job Description: {description}

Return JSON: {{"roles": ["<2-3 titles>"], "departments": ["<2-3 departments>"], "description": "<1 sentence on how to reach out>"}}
"""

JOB_SUMMARY_PROMPT = """Summarize this job in exactly 3 bullet points. Each bullet should be:
- Under 15 words
- Action-oriented
- Highlight key aspects (tech, impact, team)

Job Title: {title}
Description: {description}

Return JSON: {{"bullets": ["bullet1", "bullet2", "bullet3"]}}
"""

MESSAGE_GENERATION_PROMPT = """Generate a friendly, concise referral message for someone to share with their network.

Member Name: {member_name}
Job Role: {job_title}
Company: {company}
Key Skills: {skills}
Why this matches: {match_reason}

Keep it under 100 words, conversational, mention the match reason naturally,
include a soft ask and no emojis.

Return JSON: {{"subject": "<subject line>", "body": "<message body>"}}
"""

NUDGE_PROMPT = """You write short referral nudges for members of a hiring network.

Member: {member_name}
Job: {job_title} at {company}
Match score: {score}/100 ({tier})
Why the member fits:
{reasons}

Write one nudge encouraging the member to refer someone from their network.
Headline under 10 words, body under 40 words, no emojis.

Return JSON: {{"headline": "<headline>", "body": "<body>"}}
"""
