"""Static file contents written into the generated project."""

from __future__ import annotations

import json

PNPM_WORKSPACE_YAML = """\
packages:
  - "apps/*"
  - "packages/*"
"""

COMPONENTS_JSON = (
    json.dumps(
        {
            "$schema": "https://ui.shadcn.com/schema.json",
            "style": "new-york",
            "rsc": True,
            "tsx": True,
            "tailwind": {
                "config": "",
                "css": "src/app/globals.css",
                "baseColor": "neutral",
                "cssVariables": True,
                "prefix": "",
            },
            "aliases": {
                "components": "@/components",
                "utils": "@/lib/utils",
                "ui": "@/components/ui",
                "lib": "@/lib",
                "hooks": "@/hooks",
            },
            "iconLibrary": "lucide",
        },
        indent=2,
    )
    + "\n"
)

SUPABASE_BROWSER_CLIENT_TS = """\
import { createBrowserClient } from "@supabase/ssr";

export function createClient() {
  return createBrowserClient(
    process.env.NEXT_PUBLIC_SUPABASE_URL!,
    process.env.NEXT_PUBLIC_SUPABASE_ANON_KEY!
  );
}
"""

SUPABASE_SERVER_CLIENT_TS = """\
import { createServerClient } from "@supabase/ssr";
import { cookies } from "next/headers";

export async function createClient() {
  const cookieStore = await cookies();

  return createServerClient(
    process.env.NEXT_PUBLIC_SUPABASE_URL!,
    process.env.NEXT_PUBLIC_SUPABASE_ANON_KEY!,
    {
      cookies: {
        getAll() {
          return cookieStore.getAll();
        },
        setAll(cookiesToSet) {
          cookiesToSet.forEach(({ name, value, options }) =>
            cookieStore.set(name, value, options)
          );
        },
      },
    }
  );
}
"""

MCP_PACKAGE_JSON = (
    json.dumps(
        {
            "name": "@repo/mcp-server",
            "version": "1.0.0",
            "private": True,
            "type": "module",
            "scripts": {"dev": "tsx src/index.ts", "build": "tsc"},
            "dependencies": {
                "@modelcontextprotocol/sdk": "^1.11.0",
                "@supabase/supabase-js": "^2.0.0",
                "zod": "^3.0.0",
            },
            "devDependencies": {
                "typescript": "^5.5.4",
                "@types/node": "^20.0.0",
                "tsx": "^4.0.0",
            },
        },
        indent=2,
    )
    + "\n"
)

MCP_TSCONFIG_JSON = (
    json.dumps(
        {
            "compilerOptions": {
                "target": "ES2022",
                "module": "ES2022",
                "moduleResolution": "bundler",
                "strict": True,
                "esModuleInterop": True,
                "skipLibCheck": True,
                "outDir": "./dist",
                "rootDir": "./src",
            },
            "include": ["src/**/*.ts"],
        },
        indent=2,
    )
    + "\n"
)

MCP_INDEX_TS = """\
import { McpServer } from "@modelcontextprotocol/sdk/server/mcp.js";
import { StdioServerTransport } from "@modelcontextprotocol/sdk/server/stdio.js";

const server = new McpServer({
  name: "item-manager",
  version: "1.0.0",
});

const transport = new StdioServerTransport();
await server.connect(transport);
console.error("MCP server started");
"""

MIGRATION_SUFFIX = "_create_items_table.sql"

CREATE_ITEMS_TABLE_SQL = """\
-- Create items table
CREATE TABLE IF NOT EXISTS items (
  id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
  user_id UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,
  title TEXT NOT NULL,
  description TEXT,
  created_at TIMESTAMPTZ DEFAULT now(),
  updated_at TIMESTAMPTZ DEFAULT now()
);

ALTER TABLE items ENABLE ROW LEVEL SECURITY;

CREATE POLICY "Users can see own items"
  ON items FOR SELECT
  USING (auth.uid() = user_id);

CREATE POLICY "Users can insert own items"
  ON items FOR INSERT
  WITH CHECK (auth.uid() = user_id);

CREATE POLICY "Users can update own items"
  ON items FOR UPDATE
  USING (auth.uid() = user_id);

CREATE POLICY "Users can delete own items"
  ON items FOR DELETE
  USING (auth.uid() = user_id);
"""

MIGRATIONS_WORKFLOW_YML = """\
name: Supabase Migrations

on:
  push:
    branches:
      - main
    paths:
      - "supabase/migrations/**"
  pull_request:
    branches:
      - main
    paths:
      - "supabase/migrations/**"

jobs:
  deploy-migrations:
    runs-on: ubuntu-latest

    steps:
      - uses: actions/checkout@v4

      - name: Setup Supabase CLI
        uses: supabase/setup-cli@v1
        with:
          version: latest

      - name: Link Supabase project
        run: supabase link --project-ref ${{ secrets.SUPABASE_PROJECT_REF }}
        env:
          SUPABASE_ACCESS_TOKEN: ${{ secrets.SUPABASE_ACCESS_TOKEN }}

      - name: Push migrations to production
        if: github.ref == 'refs/heads/main'
        run: supabase db push --db-url "${{ secrets.SUPABASE_DB_URL_PRODUCTION }}"

      - name: List migrations
        run: supabase migration list
"""

VERCELIGNORE = """\
.env.local
.env*.local
node_modules
.next
"""

WEB_ENV_EXAMPLE = """\
# Supabase configuration
# Local development: NEXT_PUBLIC_SUPABASE_URL=http://127.0.0.1:54321
# Production: NEXT_PUBLIC_SUPABASE_URL=https://<project-ref>.supabase.co
NEXT_PUBLIC_SUPABASE_URL=your_supabase_url_here
NEXT_PUBLIC_SUPABASE_ANON_KEY=your_anon_key_here
"""

MCP_ENV_EXAMPLE = """\
# Supabase configuration
# Local development: SUPABASE_URL=http://127.0.0.1:54321
# Production: SUPABASE_URL=https://<project-ref>.supabase.co
SUPABASE_URL=your_supabase_url_here
SUPABASE_ANON_KEY=your_anon_key_here
SUPABASE_SERVICE_ROLE_KEY=your_service_role_key_here
"""

# Patterns appended to the project's .gitignore.
CREDENTIAL_IGNORE_PATTERNS: tuple[str, ...] = (
    ".supabase-credentials.env",
    ".vercel-deployment-info",
    ".stackup/",
)
ENV_IGNORE_PATTERNS: tuple[str, ...] = (
    ".env.local",
    ".env*.local",
    "apps/web/.env.local",
    "apps/mcp-server/.env.local",
)
