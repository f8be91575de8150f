from querybench.cli import main

raise SystemExit(main())
